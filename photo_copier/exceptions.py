"""
Custom exception hierarchy for the photo copier application.

Configuration problems are fatal and raised before scanning starts.
Per-file problems during execution are recorded against the entry
and never abort the batch.
"""
from typing import Iterable, List, Union


class PhotoCopierError(Exception):
    """Base exception for all photo copier errors."""
    pass


class ConfigurationError(PhotoCopierError):
    """Raised when the run options are invalid."""

    def __init__(self, errors: Union[str, Iterable[str]]):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors))


class TemplateError(ConfigurationError):
    """Raised when a destination template cannot be parsed."""
    pass


class PathResolutionError(PhotoCopierError):
    """Raised when a template yields no usable destination for one file."""
    pass


class FileOperationError(PhotoCopierError):
    """Raised when file copy/move operations fail."""
    pass


class TransactionLogError(PhotoCopierError):
    """Raised when a transaction log is missing, unreadable or unusable."""
    pass
