from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from aaschat.services.connection import EngineConnection, RawResult
from aaschat.services.errors import SchemaFetchError
from aaschat.utils.logger import logger

TABLES_QUERY = "SELECT [ID], [Name] FROM $SYSTEM.TMSCHEMA_TABLES"
COLUMNS_QUERY = "SELECT * FROM $SYSTEM.TMSCHEMA_COLUMNS"

SCHEMA_HEADER = "Here is the schema of the Analysis Services model:"

# TMSCHEMA_COLUMNS exposes the display name under either field depending on server version
COLUMN_NAME_FIELDS = ("Name", "ExplicitName")


@dataclass
class TableInfo:
    id: str
    name: str
    columns: List[str] = field(default_factory=list)


@dataclass
class SchemaDescription:
    tables: List[TableInfo] = field(default_factory=list)

    @classmethod
    def from_catalogs(
        cls,
        tables: Sequence[Tuple[str, str]],
        columns: Sequence[Tuple[str, str]],
    ) -> "SchemaDescription":
        """Join the table catalog with the column catalog on table id.

        Unnamed tables are dropped and columns whose owner is unknown are ignored.
        """
        infos: List[TableInfo] = []
        for table_id, name in tables:
            if not name:
                continue
            owned = [col_name for owner_id, col_name in columns if owner_id == table_id]
            infos.append(TableInfo(id=table_id, name=name, columns=owned))
        return cls(tables=infos)

    @property
    def table_names(self) -> List[str]:
        return [t.name for t in self.tables]

    def to_prompt_text(self) -> str:
        lines = [SCHEMA_HEADER]
        for table in self.tables:
            lines.append(f"Table: {table.name}")
            lines.append("Columns:")
            lines.extend(f"- {col}" for col in table.columns)
            lines.append("")
        return "\n".join(lines) + "\n"


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _read_tables(result: RawResult) -> List[Tuple[str, str]]:
    index = {name: i for i, name in enumerate(result.columns)}
    id_pos, name_pos = index.get("ID"), index.get("Name")
    tables: List[Tuple[str, str]] = []
    for row in result.rows:
        table_id = _text(row[id_pos]) if id_pos is not None else ""
        name = _text(row[name_pos]) if name_pos is not None else ""
        tables.append((table_id, name))
    return tables


def _read_columns(result: RawResult) -> List[Tuple[str, str]]:
    index = {name: i for i, name in enumerate(result.columns)}
    name_pos: Optional[int] = next(
        (index[f] for f in COLUMN_NAME_FIELDS if f in index), None
    )
    owner_pos = index.get("TableID")
    columns: List[Tuple[str, str]] = []
    for row in result.rows:
        name = _text(row[name_pos]) if name_pos is not None else "Unknown"
        owner_id = _text(row[owner_pos]) if owner_pos is not None else ""
        columns.append((owner_id, name))
    return columns


def fetch_schema(
    connection: EngineConnection,
    notify: Optional[Callable[[str], None]] = None,
) -> SchemaDescription:
    """Read the table and column catalogs from an open connection."""
    emit = notify or (lambda _msg: None)

    emit("Fetching tables...")
    try:
        tables = _read_tables(connection.execute(TABLES_QUERY))
    except Exception as exc:  # noqa: BLE001
        logger.error("Error fetching tables: %s", exc)
        raise SchemaFetchError(f"Error fetching tables: {exc}") from exc
    logger.info("Found %d tables", len(tables))

    emit("Fetching columns...")
    try:
        raw_columns = connection.execute(COLUMNS_QUERY)
    except Exception as exc:  # noqa: BLE001
        logger.error("Error fetching columns: %s", exc)
        raise SchemaFetchError(f"Error fetching columns: {exc}") from exc
    logger.debug("Available fields in TMSCHEMA_COLUMNS: %s", ", ".join(raw_columns.columns))
    columns = _read_columns(raw_columns)
    logger.info("Found %d columns", len(columns))

    return SchemaDescription.from_catalogs(tables, columns)
