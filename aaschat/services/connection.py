from __future__ import annotations

import sys
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Optional, Protocol, Tuple

from aaschat.config import Settings, settings
from aaschat.services.credentials import CredentialProvider
from aaschat.utils.logger import logger


@dataclass
class RawResult:
    """Column names and row tuples exactly as the engine returned them."""

    columns: List[str] = field(default_factory=list)
    rows: List[Tuple[Any, ...]] = field(default_factory=list)


class EngineConnection(Protocol):
    def execute(self, statement: str) -> RawResult: ...


def build_connection_string(server: str, database: str, token: Optional[str] = None) -> str:
    conn_str = f"Data Source={server};Initial Catalog={database};"
    if token is not None:
        # Azure Analysis Services takes the bearer token as password with an empty user
        conn_str += f"User ID=;Password={token};"
    return conn_str


class AdomdConnection:
    """Thin wrapper around an open ``pyadomd`` connection."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    def execute(self, statement: str) -> RawResult:
        cursor = self._conn.cursor()
        try:
            cursor.execute(statement)
            rows = [tuple(row) for row in cursor.fetchall()]
            columns = [desc.name for desc in cursor.description]
        finally:
            cursor.close()
        return RawResult(columns=columns, rows=rows)


def _load_pyadomd(dll_path: str) -> Any:
    # pyadomd resolves the ADOMD.NET assembly through sys.path when imported
    if dll_path and dll_path not in sys.path:
        sys.path.append(dll_path)
    from pyadomd import Pyadomd  # type: ignore

    return Pyadomd


class AnalysisServicesConnector:
    """Opens short-lived, token-authenticated connections to one model."""

    def __init__(
        self,
        credentials: CredentialProvider,
        config: Settings = settings,
    ) -> None:
        self.server = config.aas_server
        self.database = config.aas_database
        self._dll_path = config.adomd_dll_path
        self._credentials = credentials

    @property
    def credentials(self) -> CredentialProvider:
        return self._credentials

    def _open(self, conn_str: str) -> Any:
        pyadomd_cls = _load_pyadomd(self._dll_path)
        conn = pyadomd_cls(conn_str)
        conn.open()
        return conn

    def _close(self, conn: Any) -> None:
        conn.close()

    @contextmanager
    def connect(self) -> Iterator[EngineConnection]:
        credential = self._credentials.acquire_token(self.server)
        logger.info("Connecting to Analysis Services: %s/%s", self.server, self.database)
        conn = self._open(build_connection_string(self.server, self.database, credential.token))
        try:
            yield AdomdConnection(conn)
        finally:
            self._close(conn)
            logger.debug("Connection to %s closed", self.server)
