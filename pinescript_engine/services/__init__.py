"""Services for the PineScript engine."""

from .validation_service import ValidationService
from .autofix_service import AutofixService
from .formatting_service import FormattingService
from .version_converter import VersionConverter
from .history_service import VersionHistoryService, compare_versions

__all__ = [
    "ValidationService",
    "AutofixService",
    "FormattingService",
    "VersionConverter",
    "VersionHistoryService",
    "compare_versions",
]
