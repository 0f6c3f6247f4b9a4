"""Models package — records decoded from Exact Online responses."""
from exactpilot.models.filters import FilterOperator, FilterRule, build_odata_filter
from exactpilot.models.records import (
    Division,
    PageEnvelope,
    Transaction,
    decode_division_page,
    decode_transaction_page,
    normalize_date,
    normalize_row,
)

__all__ = [
    "Division",
    "FilterOperator",
    "FilterRule",
    "PageEnvelope",
    "Transaction",
    "build_odata_filter",
    "decode_division_page",
    "decode_transaction_page",
    "normalize_date",
    "normalize_row",
]
