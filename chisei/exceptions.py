"""
exceptions.py
~~~~~~~~~~~~~

Exception types raised by the network engine and the model codec.
"""


class ChiseiError(Exception):
    """Base class for all errors raised by this package."""


class ModelIOError(ChiseiError, OSError):
    """A model or dataset file could not be opened, read or written."""


class ModelFormatError(ChiseiError, ValueError):
    """Persisted bytes are not a valid model (bad magic, truncated data)."""


class DimensionMismatchError(ChiseiError, ValueError):
    """A vector length does not match the network topology."""


class EmptyDatasetError(ChiseiError, ValueError):
    """A metric or training call received zero samples."""


class ActivationError(ChiseiError, ValueError):
    """Unknown or unsupported activation kind."""
