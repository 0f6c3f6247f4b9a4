"""
Record models for Exact Online OData pages — divisions and transaction lines.

Every list endpoint answers ``{"d": {"results": [...], "__next": "<url>"}}``.
Dates arrive as ``/Date(<epoch ms>)/`` strings.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from exactpilot.errors import DecodeError

T = TypeVar("T")

Scalar = Union[str, int, float, bool, None]

_EPOCH_MS_DATE = re.compile(r"/Date\((\d+)\)/")


class PageEnvelope(BaseModel, Generic[T]):
    """One page of results plus the link to the next page, if any."""

    model_config = ConfigDict(populate_by_name=True)

    results: list[T]
    next_cursor: str | None = Field(default=None, alias="__next")


class _ODataResponse(BaseModel, Generic[T]):
    d: PageEnvelope[T]


class Division(BaseModel):
    """An administration (tenant) the user has access to."""

    model_config = ConfigDict(populate_by_name=True)

    code: int = Field(alias="Code")
    customer_name: str = Field(default="", alias="CustomerName")
    description: str = Field(default="", alias="Description")
    customer: str | None = Field(default=None, alias="Customer")
    customer_code: str | None = Field(default=None, alias="CustomerCode")

    @field_validator("customer_name", "description", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def sort_key(self) -> str:
        return self.customer_name + self.description


class Transaction(BaseModel):
    """A transaction line as an open mapping of scalar field values."""

    data: dict[str, Scalar] = Field(default_factory=dict)

    def __getitem__(self, key: str) -> Scalar:
        return self.data[key]

    def get(self, key: str, default: Scalar = None) -> Scalar:
        return self.data.get(key, default)


def normalize_date(value: str) -> str:
    """Rewrite an embedded ``/Date(ms)/`` value as an ISO-8601 UTC timestamp.

    Strings without the pattern are returned unchanged.
    """
    match = _EPOCH_MS_DATE.search(value)
    if not match:
        return value
    seconds = int(match.group(1)) // 1000
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        return value


def normalize_row(row: dict[str, Any]) -> dict[str, Scalar]:
    """Drop nested objects and arrays, and normalize date strings."""
    data: dict[str, Scalar] = {}
    for key, value in row.items():
        if isinstance(value, (dict, list)):
            continue
        data[key] = normalize_date(value) if isinstance(value, str) else value
    return data


def _decode(payload: Any, model: type[_ODataResponse[Any]], what: str) -> PageEnvelope[Any]:
    try:
        return model.model_validate(payload).d
    except ValidationError as e:
        raise DecodeError(f"Failed to parse {what}: {e}") from e


def decode_division_page(payload: Any) -> PageEnvelope[Division]:
    """Decode a page of ``system/Divisions``.

    Raises:
        DecodeError: If the payload does not match the division shape.
    """
    return _decode(payload, _ODataResponse[Division], "divisions")


def decode_transaction_page(payload: Any) -> PageEnvelope[Transaction]:
    """Decode a page of ``bulk/Financial/TransactionLines`` into open records.

    Raises:
        DecodeError: If the payload is not a results page.
    """
    page = _decode(payload, _ODataResponse[Any], "transactions")
    transactions = [
        Transaction(data=normalize_row(row))
        for row in page.results
        if isinstance(row, dict)
    ]
    return PageEnvelope[Transaction](results=transactions, next_cursor=page.next_cursor)
