"""Encrypted, password-protected per-user store of named entries with categorised data."""

__version__ = "0.1.0"

__all__ = ["__version__"]