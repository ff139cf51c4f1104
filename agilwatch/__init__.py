"""
Agilwatch package initializer.

This package incrementally ingests "Compra Ágil" procurement listings from the
Mercado Público search API, enriches each listing with its detail record and
stores the result in a local SQLite database.

The package exposes a ``__version__`` attribute indicating the installed
version of Agilwatch. The version is read from pyproject.toml via
importlib.metadata – this is the single source of truth.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("agilwatch")
except PackageNotFoundError:
    # Package is not installed (running from source without pip install -e .)
    __version__ = "0.0.0.dev"

__all__: list[str] = ["__version__"]
