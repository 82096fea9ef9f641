"""User-space TCP and UDP protocol toolkit."""

__version__ = "0.1.0"