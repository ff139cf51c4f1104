"""Headless browser integration."""

from .capture import CredentialSource, PlaywrightCredentialCapture, extract_credential

__all__ = ["CredentialSource", "PlaywrightCredentialCapture", "extract_credential"]
