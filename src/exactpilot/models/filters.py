"""
Filter rules — field/operator/value conditions compiled into an OData ``$filter``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from enum import Enum

from pydantic import BaseModel, Field, field_validator

_FIELD_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class FilterOperator(str, Enum):
    """OData comparison and string operators."""

    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GE = "ge"
    LT = "lt"
    LE = "le"
    CONTAINS = "contains"
    STARTSWITH = "startswith"
    ENDSWITH = "endswith"

    @property
    def quotes_value(self) -> bool:
        return self in (FilterOperator.CONTAINS, FilterOperator.STARTSWITH, FilterOperator.ENDSWITH)


class FilterRule(BaseModel):
    """A single ``<field> <operator> <value>`` condition.

    A rule with a blank field or value is incomplete and is left out of the
    compiled filter.
    """

    field: str = ""
    operator: FilterOperator = FilterOperator.EQ
    value: str = Field(default="")

    @field_validator("field")
    @classmethod
    def _check_field(cls, v: str) -> str:
        v = v.strip()
        if v and not _FIELD_NAME.match(v):
            raise ValueError(f"Invalid field name: {v!r}")
        return v

    @property
    def is_complete(self) -> bool:
        return bool(self.field and self.value.strip())

    def to_odata(self) -> str:
        value = self.value.strip()
        if self.operator.quotes_value:
            escaped = value.replace("'", "''")
            return f"{self.field} {self.operator.value} '{escaped}'"
        # Comparison values go through as typed; the API converts them
        return f"{self.field} {self.operator.value} {value}"

    @classmethod
    def parse(cls, text: str) -> FilterRule:
        """Parse ``"FIELD OP VALUE"``; the value may contain spaces.

        Raises:
            ValueError: If the text has fewer than three parts, or the
                operator or field name is invalid.
        """
        parts = text.split(maxsplit=2)
        if len(parts) != 3:
            raise ValueError(f"Expected 'FIELD OP VALUE', got {text!r}")
        field, operator, value = parts
        return cls(field=field, operator=operator.lower(), value=value)


def build_odata_filter(rules: Iterable[FilterRule]) -> str:
    """Join the complete rules with ``and``. Returns ``""`` when none are complete."""
    return " and ".join(rule.to_odata() for rule in rules if rule.is_complete)
