"""Domain layer for Agilwatch.

This package groups the plain data types shared by the sync pipeline. It does
not depend on HTTP, browser or database concerns.
"""

from . import models

__all__ = ["models"]
