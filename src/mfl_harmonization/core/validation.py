from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from mfl_harmonization.core.exceptions import SchemaViolation


@dataclass(frozen=True)
class Violation:
    path: str
    code: str
    message: str


@dataclass(frozen=True)
class ValidationResult:
    violations: tuple[Violation, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.violations

    @property
    def paths(self) -> list[str]:
        return [item.path for item in self.violations]

    def merge(self, *others: ValidationResult) -> ValidationResult:
        merged = list(self.violations)
        for other in others:
            merged.extend(other.violations)
        return ValidationResult(violations=tuple(merged))

    def raise_for_violations(self) -> None:
        if self.violations:
            raise SchemaViolation(self.violations)

    @classmethod
    def collect(cls, results: Iterable[ValidationResult]) -> ValidationResult:
        return cls().merge(*results)


def join_path(prefix: str, name: str) -> str:
    return f"{prefix}.{name}" if prefix else name
