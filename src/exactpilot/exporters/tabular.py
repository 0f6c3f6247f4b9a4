"""
Tabular exporter.

Writes fetched divisions or transaction lines to CSV, JSON or Excel,
chosen by the output file's suffix. Columns appear in first-seen order.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pandas as pd

from exactpilot.models.records import Division, Transaction

SUPPORTED_SUFFIXES = (".csv", ".json", ".xlsx")


def _rows(records: Sequence[Division | Transaction]) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for record in records:
        if isinstance(record, Transaction):
            rows.append(dict(record.data))
        else:
            rows.append(record.model_dump(by_alias=True))
    return rows


def to_frame(records: Sequence[Division | Transaction]) -> pd.DataFrame:
    """Build a DataFrame with one row per record."""
    return pd.DataFrame(_rows(records))


def default_filename(
    divisions: int | Sequence[int] | None,
    kind: str = "transactions",
    suffix: str = ".csv",
) -> str:
    """Name an export after its division, or ``multiple-divisions-...`` for several."""
    if isinstance(divisions, int):
        divisions = [divisions]
    if not divisions:
        prefix = kind
    elif len(divisions) == 1:
        prefix = f"{divisions[0]}-{kind}"
    else:
        prefix = f"multiple-divisions-{kind}"
    return f"{prefix}{suffix}"


def export_records(records: Sequence[Division | Transaction], path: str | Path) -> Path:
    """Write records to ``path``.

    Raises:
        ValueError: If there is nothing to export or the suffix is unsupported.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValueError(
            f"Unsupported export format {suffix!r}; use one of {', '.join(SUPPORTED_SUFFIXES)}"
        )
    if not records:
        raise ValueError("No records to export")

    if suffix == ".json":
        path.write_text(json.dumps(_rows(records), indent=2, ensure_ascii=False))
    elif suffix == ".csv":
        to_frame(records).to_csv(path, index=False)
    else:
        sheet = "Transactions" if isinstance(records[0], Transaction) else "Divisions"
        to_frame(records).to_excel(path, index=False, sheet_name=sheet)
    return path
