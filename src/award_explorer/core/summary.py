from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

ENTITY_CSV_COLUMNS: List[Tuple[str, str]] = [
    ("entity", "Entity"),
    ("contract_count", "Contracts"),
    ("total_contract_value", "Total Value"),
    ("average_contract_value", "Avg Value"),
    ("first_contract_date", "First"),
    ("last_contract_date", "Last"),
]

_MONEY_COLUMNS = {"total_contract_value", "average_contract_value"}
_DATE_COLUMNS = {"first_contract_date", "last_contract_date"}


@dataclass
class SummaryStats:
    """
    Headline figures for the rows currently shown in the entity table.

    These describe the visible page only, not the whole dataset.
    """
    total_contracts: float = 0.0
    total_value: float = 0.0
    average_value: float = 0.0
    top_entity: str = ""
    top_entity_value: float = 0.0


def _numeric(series: pd.Series) -> pd.Series:
    return pd.to_numeric(series, errors="coerce").fillna(0.0).astype(float)


def compute_summary(rows: Sequence[Dict[str, Any]]) -> SummaryStats:
    """
    Build SummaryStats from entity-table rows.

    Non-numeric counts and values count as 0; the top entity is the first row,
    i.e. whatever the table is currently sorted by.
    """
    if not rows:
        return SummaryStats()

    df = pd.DataFrame.from_records(list(rows))
    counts = _numeric(df["contract_count"]) if "contract_count" in df.columns else pd.Series([0.0])
    values = _numeric(df["total_contract_value"]) if "total_contract_value" in df.columns else pd.Series([0.0] * len(df))

    total_contracts = float(counts.sum())
    total_value = float(values.sum())
    average_value = total_value / total_contracts if total_contracts > 0 else 0.0

    first = rows[0]
    top_entity = first.get("entity")
    return SummaryStats(
        total_contracts=total_contracts,
        total_value=total_value,
        average_value=average_value,
        top_entity="" if top_entity is None else str(top_entity),
        top_entity_value=float(values.iloc[0]),
    )


def _format_date(value: Any) -> str:
    if value is None or value == "":
        return ""
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return ""
    return ts.strftime("%Y-%m-%d")


def rows_to_csv(
    rows: Sequence[Dict[str, Any]],
    columns: Optional[List[Tuple[str, str]]] = None,
) -> str:
    """
    Render entity-table rows as CSV (header row of labels, one line per row).

    Money columns are written as whole numbers, dates as YYYY-MM-DD, and commas
    inside text are replaced by ';'. Empty input gives ''.
    """
    if not rows:
        return ""
    columns = columns or ENTITY_CSV_COLUMNS

    df = pd.DataFrame.from_records(list(rows))
    out = pd.DataFrame()
    for key, label in columns:
        series = df[key] if key in df.columns else pd.Series([None] * len(df))
        if key in _MONEY_COLUMNS:
            numeric = pd.to_numeric(series, errors="coerce")
            out[label] = numeric.round(0).astype("Int64").astype("string").fillna("")
        elif key in _DATE_COLUMNS:
            out[label] = series.apply(_format_date)
        else:
            out[label] = series.apply(lambda v: "" if v is None or pd.isna(v) else str(v).replace(",", ";"))

    return out.to_csv(index=False, lineterminator="\n").rstrip("\n")
