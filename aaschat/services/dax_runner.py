from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
from typing import Any, Dict, List, Protocol

import pandas as pd

from aaschat.services.errors import AuthenticationError, QueryExecutionError
from aaschat.utils.logger import logger


class Connector(Protocol):
    def connect(self) -> Any: ...


@dataclass
class ResultTable:
    columns: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_records(self) -> List[Dict[str, Any]]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=self.columns)


def to_cell_value(value: Any) -> Any:
    """Map an engine value onto str, number, bool, None or a date."""
    if value is None or isinstance(value, (bool, int, float, str, date)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, time):
        return value.isoformat()
    return str(value)


def run_dax(connector: Connector, query: str) -> ResultTable:
    """Execute a DAX query on a fresh connection and materialize every row."""
    try:
        with connector.connect() as conn:
            raw = conn.execute(query)
    except AuthenticationError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.error("DAX execution failed: %s", exc)
        raise QueryExecutionError(f"DAX execution failed: {exc}") from exc

    table = ResultTable(
        columns=[str(c) for c in raw.columns],
        rows=[[to_cell_value(v) for v in row] for row in raw.rows],
    )
    logger.info("DAX returned %d rows and %d columns", table.row_count, len(table.columns))
    return table

