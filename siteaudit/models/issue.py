"""Finding and Issue records for the consolidation engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional, Union


class Severity(str, Enum):
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def priority(self) -> int:
        """Priority score used for the final issue ordering."""
        return _SEVERITY_PRIORITY[self]

    @classmethod
    def parse(cls, value: Union[str, "Severity"]) -> "Severity":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown severity: {value!r}")


_SEVERITY_RANK = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3}
_SEVERITY_PRIORITY = {Severity.LOW: 2, Severity.MEDIUM: 5, Severity.HIGH: 10}


class Category(str, Enum):
    TECHNICAL = "Technical"
    ON_PAGE = "On-page"
    CONTENT = "Content"
    ACCESSIBILITY = "Accessibility"
    PERFORMANCE = "Performance"

    @classmethod
    def parse(cls, value: Union[str, "Category"]) -> "Category":
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower().replace("_", "-").replace(" ", "-")
        if text == "onpage":
            text = "on-page"
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown issue category: {value!r}")


@dataclass(frozen=True)
class Finding:
    """A single raw observation about a defect, not yet merged."""

    category: Category
    severity: Severity
    message: str
    details: Optional[str] = None
    fix: Optional[str] = None
    affected_pages: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "category", Category.parse(self.category))
        object.__setattr__(self, "severity", Severity.parse(self.severity))
        object.__setattr__(self, "affected_pages", tuple(self.affected_pages))


@dataclass(frozen=True)
class Issue:
    """A consolidated, severity-resolved issue spanning one or more pages."""

    key: str
    category: Category
    severity: Severity
    message: str
    details: Optional[str] = None
    fix: Optional[str] = None
    affected_pages: tuple[str, ...] = ()
    occurrences: int = 1

    @property
    def priority(self) -> int:
        return self.severity.priority

    @property
    def page_count(self) -> int:
        return len(self.affected_pages)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "category": self.category.value,
            "severity": self.severity.value,
            "priority": self.priority,
            "message": self.message,
            "details": self.details,
            "fix": self.fix,
            "affected_pages": list(self.affected_pages),
            "page_count": self.page_count,
            "occurrences": self.occurrences,
        }


@dataclass(frozen=True)
class ConsolidatedIssues:
    """Priority-ordered issues plus a per-category partition of the same list."""

    issues: tuple[Issue, ...] = ()
    by_category: dict[Category, tuple[Issue, ...]] = field(default_factory=dict)

    def __iter__(self) -> Iterator[Issue]:
        return iter(self.issues)

    def __len__(self) -> int:
        return len(self.issues)

    def count_by_severity(self) -> dict[str, int]:
        counts = {s.value: 0 for s in Severity}
        for issue in self.issues:
            counts[issue.severity.value] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [i.to_dict() for i in self.issues],
            "by_category": {
                cat.value: [i.key for i in items]
                for cat, items in self.by_category.items()
            },
            "counts": self.count_by_severity(),
        }
