"""Validation issue and result types, shared by local checks and service results."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    FATAL = "Fatal"  # mathematically impossible
    WARNING = "Warning"  # data quality concern, calculation proceeds
    INFO = "Info"


class ValidationIssue(BaseModel):
    """A translation-ready validation message."""

    message_key: str
    params: dict[str, Any] = Field(default_factory=dict)
    severity: Severity
    field_path: Optional[str] = None
    code: str

    @classmethod
    def fatal(cls, code: str, message_key: str, params: dict[str, Any], field_path: str | None = None) -> ValidationIssue:
        return cls(code=code, message_key=message_key, params=params, severity=Severity.FATAL, field_path=field_path)

    @classmethod
    def warning(cls, code: str, message_key: str, params: dict[str, Any], field_path: str | None = None) -> ValidationIssue:
        return cls(code=code, message_key=message_key, params=params, severity=Severity.WARNING, field_path=field_path)

    @classmethod
    def info(cls, code: str, message_key: str, params: dict[str, Any], field_path: str | None = None) -> ValidationIssue:
        return cls(code=code, message_key=message_key, params=params, severity=Severity.INFO, field_path=field_path)


class ValidationResult(BaseModel):
    is_valid: bool = True
    issues: list[ValidationIssue] = Field(default_factory=list)

    def add_issue(self, issue: ValidationIssue) -> None:
        if issue.severity is Severity.FATAL:
            self.is_valid = False
        self.issues.append(issue)

    def merge(self, other: ValidationResult) -> None:
        self.is_valid = self.is_valid and other.is_valid
        self.issues.extend(other.issues)

    def by_severity(self, severity: Severity) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity is severity]

    def has_fatal_errors(self) -> bool:
        return any(i.severity is Severity.FATAL for i in self.issues)

    def has_warnings(self) -> bool:
        return any(i.severity is Severity.WARNING for i in self.issues)
