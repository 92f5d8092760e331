"""
Data-quality reporting for recoverable input problems.

When snapshot data is malformed (unknown frequency, negative price, missing
anchor date, ...) the engine substitutes a documented safe default and records
a DataQualityIssue. Issues are always logged at WARNING; callers who want to
surface them pass a DataQualityLog and read ``issues`` afterwards.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger(__name__)


class IssueCode(str, Enum):
    """Kinds of substitutions the engine performs on malformed data."""
    UNKNOWN_FREQUENCY = "unknown_frequency"
    INVALID_PRICE = "invalid_price"
    MISSING_ANCHOR_DATE = "missing_anchor_date"
    INVALID_DATE = "invalid_date"
    UNKNOWN_STATUS = "unknown_status"
    INVALID_CATEGORY_VALUE = "invalid_category_value"


@dataclass(frozen=True)
class DataQualityIssue:
    """
    A single substitution made on malformed input.

    Attributes:
        code: Kind of issue
        message: Human-readable description
        subject_id: Subscription or category identifier, when known
        field: Name of the offending field
        original_value: Value as received
        substituted_value: Value the engine used instead
    """
    code: IssueCode
    message: str
    subject_id: Optional[str] = None
    field: Optional[str] = None
    original_value: Any = None
    substituted_value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "subject_id": self.subject_id,
            "field": self.field,
            "original_value": self.original_value,
            "substituted_value": self.substituted_value,
        }


class DataQualityLog:
    """Collects data-quality issues raised during one or more engine calls."""

    def __init__(self) -> None:
        self._issues: List[DataQualityIssue] = []

    def record(
        self,
        code: IssueCode,
        message: str,
        *,
        subject_id: Optional[str] = None,
        field: Optional[str] = None,
        original_value: Any = None,
        substituted_value: Any = None,
    ) -> DataQualityIssue:
        """
        Record an issue and log it.

        Args:
            code: Kind of issue
            message: Human-readable description
            subject_id: Subscription or category identifier
            field: Offending field name
            original_value: Value as received
            substituted_value: Safe default used instead

        Returns:
            The recorded DataQualityIssue
        """
        issue = DataQualityIssue(
            code=code,
            message=message,
            subject_id=subject_id,
            field=field,
            original_value=original_value,
            substituted_value=substituted_value,
        )
        self._issues.append(issue)
        logger.warning("Data quality [%s] %s (subject=%s)", code.value, message, subject_id)
        return issue

    @property
    def issues(self) -> List[DataQualityIssue]:
        return list(self._issues)

    def by_code(self, code: IssueCode) -> List[DataQualityIssue]:
        return [issue for issue in self._issues if issue.code == code]

    def has_issues(self) -> bool:
        return bool(self._issues)

    def clear(self) -> None:
        self._issues.clear()

    def __len__(self) -> int:
        return len(self._issues)

    def __iter__(self) -> Iterator[DataQualityIssue]:
        return iter(list(self._issues))


def ensure_log(quality: Optional[DataQualityLog]) -> DataQualityLog:
    """Return ``quality`` or a throwaway log so issues are still logged."""
    return quality if quality is not None else DataQualityLog()
