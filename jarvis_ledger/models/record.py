"""
Record Store Wire Models

The record store is a document store: every record lives in a
collection, has an id, a title, a creation timestamp, an archived
flag and a free-form field mapping. Relations are lists of record ids.

DESIGN DECISION: Filtering and sorting are plain data (FieldFilter,
SortKey) and are evaluated in Python by every backend. The backends
we target (Google Sheets, in-memory) have no query engine worth
using, and keeping one evaluator guarantees identical semantics.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


CREATED_TIME = "created_time"
TITLE = "title"


class FilterOperator(str, Enum):
    """Supported filter predicates."""
    EQUALS = "equals"
    CONTAINS = "contains"          # relation list contains an id
    ON_OR_AFTER = "on_or_after"


class FieldFilter(BaseModel):
    """A single predicate. A list of filters is always conjunctive."""
    model_config = ConfigDict(frozen=True)

    property: str
    operator: FilterOperator = FilterOperator.EQUALS
    value: Any = None

    @classmethod
    def equals(cls, prop: str, value: Any) -> "FieldFilter":
        return cls(property=prop, operator=FilterOperator.EQUALS, value=value)

    @classmethod
    def contains(cls, prop: str, record_id: str) -> "FieldFilter":
        return cls(property=prop, operator=FilterOperator.CONTAINS, value=record_id)

    @classmethod
    def on_or_after(cls, prop: str, value: Any) -> "FieldFilter":
        return cls(property=prop, operator=FilterOperator.ON_OR_AFTER, value=value)


class SortKey(BaseModel):
    """Sort by a field, or by the record's created_time."""
    model_config = ConfigDict(frozen=True)

    property: str
    descending: bool = False


class Record(BaseModel):
    """A record as returned by the store."""

    id: str
    collection: str
    title: str = ""
    created_time: datetime
    archived: bool = False
    fields: dict[str, Any] = Field(default_factory=dict)

    def lookup(self, prop: str) -> Any:
        """Get a field value, including the built-in attributes."""
        if prop == CREATED_TIME:
            return self.created_time
        if prop == TITLE:
            return self.title
        return self.fields.get(prop)

    def relation(self, prop: str) -> list[str]:
        value = self.fields.get(prop)
        if not value:
            return []
        if isinstance(value, str):
            return [value]
        return [str(item) for item in value]

    def number(self, prop: str) -> Optional[Decimal]:
        return as_decimal(self.fields.get(prop))

    def text(self, prop: str) -> Optional[str]:
        value = self.fields.get(prop)
        if value is None or value == "":
            return None
        return str(value)

    def flag(self, prop: str) -> bool:
        value = self.fields.get(prop)
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)

    def day(self, prop: str) -> Optional[date]:
        value = self.fields.get(prop)
        if not value:
            return None
        if isinstance(value, date):
            return value
        return date.fromisoformat(str(value)[:10])


# =============================================================================
# VALUE HELPERS
# =============================================================================

def as_decimal(value: Any) -> Optional[Decimal]:
    """Best-effort conversion of a stored number to Decimal."""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def to_field_value(value: Any) -> Any:
    """
    Convert a Python value to its stored representation.

    Decimals are stored as strings so no precision is lost in JSON,
    dates as ISO strings.
    """
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [to_field_value(item) for item in value]
    return value


# =============================================================================
# FILTER EVALUATION
# =============================================================================

def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(expected, bool):
        if isinstance(actual, str):
            return (actual.strip().lower() == "true") == expected
        return bool(actual) == expected
    if isinstance(expected, (int, float, Decimal)):
        actual_number = as_decimal(actual)
        return actual_number is not None and actual_number == as_decimal(expected)
    if isinstance(expected, date) and not isinstance(expected, datetime):
        return to_field_value(actual) == expected.isoformat()
    return actual == to_field_value(expected)


def _on_or_after(actual: Any, expected: Any) -> bool:
    if actual is None or actual == "":
        return False
    if isinstance(expected, datetime):
        if isinstance(actual, str):
            actual = datetime.fromisoformat(actual)
        return actual >= expected
    if isinstance(expected, date):
        return str(to_field_value(actual))[:10] >= expected.isoformat()
    actual_number = as_decimal(actual)
    return actual_number is not None and actual_number >= as_decimal(expected)


def matches(record: Record, filters: list[FieldFilter]) -> bool:
    """Evaluate a conjunctive list of filters against a record."""
    for f in filters:
        actual = record.lookup(f.property)
        if f.operator == FilterOperator.EQUALS:
            if not _equals(actual, f.value):
                return False
        elif f.operator == FilterOperator.CONTAINS:
            if str(f.value) not in record.relation(f.property):
                return False
        elif f.operator == FilterOperator.ON_OR_AFTER:
            if not _on_or_after(actual, f.value):
                return False
    return True


def sort_records(records: list[Record], sorts: Optional[list[SortKey]]) -> list[Record]:
    """
    Sort records by several keys.

    Applied as successive stable sorts from the last key to the first,
    so earlier keys take precedence. Missing values sort last.
    """
    ordered = list(records)
    for key in reversed(sorts or []):
        present = [r for r in ordered if r.lookup(key.property) not in (None, "")]
        missing = [r for r in ordered if r.lookup(key.property) in (None, "")]
        present.sort(
            key=lambda r: to_field_value(r.lookup(key.property))
            if key.property != CREATED_TIME
            else r.created_time,
            reverse=key.descending,
        )
        ordered = present + missing
    return ordered
