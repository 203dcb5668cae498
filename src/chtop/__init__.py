"""chtop: a top-like terminal dashboard for ClickHouse."""

__version__ = "0.3.0"

__all__ = ["__version__"]
