"""Tests for OData page decoding."""

from __future__ import annotations

import pytest

from exactpilot.errors import DecodeError
from exactpilot.models.records import (
    Division,
    decode_division_page,
    decode_transaction_page,
    normalize_date,
    normalize_row,
)
from tests.helpers import BASE, page

DIVISION_ROW = {
    "__metadata": {"uri": f"{BASE}/v1/1/system/Divisions(1)", "type": "Exact.Web.Api.System.Division"},
    "Code": 1,
    "Customer": "9c5f5ad5-0a7b-4b1f-bb6e-2d8a1a2f3c4d",
    "CustomerCode": "  100",
    "CustomerName": "Acme BV",
    "Description": "Main administration",
}


class TestDivisions:
    def test_decode(self) -> None:
        envelope = decode_division_page(page([DIVISION_ROW], next_path="/v1/1/system/Divisions?$skiptoken=1"))
        assert envelope.next_cursor == f"{BASE}/v1/1/system/Divisions?$skiptoken=1"
        division = envelope.results[0]
        assert division.code == 1
        assert division.customer_name == "Acme BV"
        assert division.customer_code == "  100"
        assert division.sort_key == "Acme BVMain administration"

    def test_null_names_become_empty(self) -> None:
        envelope = decode_division_page(page([{"Code": 2, "CustomerName": None, "Description": None}]))
        division = envelope.results[0]
        assert division.customer_name == ""
        assert division.customer is None

    def test_last_page_has_no_cursor(self) -> None:
        assert decode_division_page(page([DIVISION_ROW])).next_cursor is None

    def test_populate_by_name(self) -> None:
        division = Division(code=5, customer_name="X", description="Y")
        assert division.model_dump(by_alias=True)["CustomerName"] == "X"

    @pytest.mark.parametrize(
        "payload",
        [
            {"results": []},
            {"d": {"results": [{"CustomerName": "no code"}]}},
            {"d": {}},
            [],
        ],
    )
    def test_bad_shapes(self, payload: object) -> None:
        with pytest.raises(DecodeError, match="divisions"):
            decode_division_page(payload)


class TestTransactions:
    def test_date_normalization(self) -> None:
        # 1609459200000 ms = 2021-01-01T00:00:00Z
        assert normalize_date("/Date(1609459200000)/") == "2021-01-01T00:00:00+00:00"

    def test_plain_strings_unchanged(self) -> None:
        assert normalize_date("Invoice 2021-01") == "Invoice 2021-01"
        assert normalize_date("/Date(abc)/") == "/Date(abc)/"

    def test_normalize_row(self) -> None:
        row = {
            "__metadata": {"uri": "x"},
            "Date": "/Date(1609459200000)/",
            "AmountDC": -12.5,
            "EntryNumber": 17,
            "Notes": None,
            "IsReversal": False,
            "Tags": ["a", "b"],
            "Description": "Rent",
        }
        assert normalize_row(row) == {
            "Date": "2021-01-01T00:00:00+00:00",
            "AmountDC": -12.5,
            "EntryNumber": 17,
            "Notes": None,
            "IsReversal": False,
            "Description": "Rent",
        }

    def test_decode_page(self) -> None:
        envelope = decode_transaction_page(page(
            [
                {"EntryNumber": 1, "Modified": "/Date(1609459200000)/", "Account": {"Code": "x"}},
                "not a row",
                {"EntryNumber": 2},
            ],
            next_path="/v1/1/bulk/Financial/TransactionLines?$skiptoken=2",
        ))
        assert [t["EntryNumber"] for t in envelope.results] == [1, 2]
        first = envelope.results[0]
        assert first["Modified"] == "2021-01-01T00:00:00+00:00"
        assert "Account" not in first.data
        assert first.get("Missing") is None
        assert envelope.next_cursor.endswith("$skiptoken=2")

    def test_types_preserved(self) -> None:
        envelope = decode_transaction_page(page([{"Flag": True, "Count": 3, "Rate": 1.0}]))
        data = envelope.results[0].data
        assert data["Flag"] is True
        assert isinstance(data["Count"], int)
        assert isinstance(data["Rate"], float)

    def test_bad_shape(self) -> None:
        with pytest.raises(DecodeError, match="transactions"):
            decode_transaction_page({"value": []})
