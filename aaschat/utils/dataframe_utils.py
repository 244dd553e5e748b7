from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

from aaschat.services.dax_runner import ResultTable


def preview_result(table: ResultTable, rows: int) -> Dict[str, Any]:
    sample = ResultTable(columns=table.columns, rows=table.rows[:rows])
    return {
        "columns": list(sample.columns),
        "rows": sample.to_records(),
        "row_count": table.row_count,
        "column_count": len(table.columns),
    }


def describe_result(table: ResultTable) -> str:
    """One-line textual answer for a result table."""
    if table.row_count == 1 and len(table.columns) == 1:
        return f"{table.columns[0]} = {table.rows[0][0]}"
    return f"Query returned {table.row_count} rows and {len(table.columns)} columns."


def save_result(table: ResultTable, path: str | Path) -> Path:
    """Write a result to CSV, or to Excel for .xlsx targets."""
    target = Path(path)
    df = table.to_dataframe()
    if target.suffix.lower() == ".xlsx":
        df.to_excel(target, index=False)
    else:
        df.to_csv(target, index=False)
    return target
