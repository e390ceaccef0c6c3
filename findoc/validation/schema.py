"""Validation result models.

A ValidationResultSet stores one result per canonical field. Legacy alias
names resolve through the shared alias table, so ``results["invoice_number"]``
is the very object stored under ``reference_number``.
"""

from collections.abc import Iterator, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from findoc.shared.fields import CANONICAL_ALIASES, canonical_name


class ValidationResult(BaseModel):
    """Outcome of validating one field.

    Warnings are informational and never make a result invalid.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    value: Any = None
    valid: bool
    error: str | None = None
    warning: str | None = None
    numeric_value: float | None = None


class ValidationSummary(BaseModel):
    """Counts over canonical fields; ``all_valid`` ignores warnings."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total: int
    valid: int
    warnings: int
    errors: int
    all_valid: bool


class ValidationResultSet(Mapping[str, ValidationResult]):
    """Read-only mapping of field name (canonical or alias) -> ValidationResult."""

    def __init__(self, results: Mapping[str, ValidationResult]) -> None:
        self._results: dict[str, ValidationResult] = dict(results)

    def __getitem__(self, field: str) -> ValidationResult:
        return self._results[canonical_name(field)]

    def __iter__(self) -> Iterator[str]:
        for field in self._results:
            yield field
            alias = CANONICAL_ALIASES.get(field)
            if alias is not None:
                yield alias

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self) -> str:
        return f"ValidationResultSet({self._results!r})"

    def canonical(self) -> dict[str, ValidationResult]:
        """Results keyed by canonical field name only."""
        return dict(self._results)

    def to_dict(
        self, by_alias: bool = True, include_aliases: bool = True
    ) -> dict[str, dict[str, Any]]:
        """Serialize for JSON output.

        Args:
            by_alias: Use camelCase attribute names (numericValue)
            include_aliases: Also emit legacy alias keys

        Returns:
            Plain dict; alias keys carry the same content as their canonical key
        """
        dumped = {
            field: result.model_dump(by_alias=by_alias, exclude_none=True)
            for field, result in self._results.items()
        }
        if not include_aliases:
            return dumped
        return {field: dumped[canonical_name(field)] for field in self}
