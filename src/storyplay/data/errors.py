"""Custom exceptions for story loading and validation."""


class DataError(Exception):
    """Base exception for the data layer."""


class DataLoadError(DataError):
    """Raised when story files are missing or not valid JSON."""


class DataValidationError(DataError):
    """Raised when story JSON fails structural validation."""


class DataReferenceError(DataError):
    """Raised when a story graph references missing nodes, links or variables."""
