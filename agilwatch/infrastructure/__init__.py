"""Infrastructure layer for Agilwatch.

Holds adapters for HTTP, browser capture, persistence and observability.
Subpackages are imported explicitly by callers.
"""
