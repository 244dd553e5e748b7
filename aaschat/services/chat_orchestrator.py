from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Callable, List, Optional

from aaschat.config import Settings, settings
from aaschat.services.connection import AnalysisServicesConnector
from aaschat.services.credentials import Credential, CredentialProvider, scope_for_server
from aaschat.services.dax_runner import Connector, ResultTable, run_dax
from aaschat.services.errors import ChatPipelineError, SchemaFetchError
from aaschat.services.llm_client import QueryTranslator
from aaschat.services.prompt_composer import compose_system_prompt, load_template
from aaschat.services.schema_introspector import SchemaDescription, fetch_schema
from aaschat.utils.logger import logger

ProgressCallback = Callable[[str], None]


class SessionStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    TRANSLATING = "translating"
    EXECUTING = "executing"
    FAILED = "failed"
    CLOSED = "closed"


@dataclass
class SessionState:
    status: SessionStatus = SessionStatus.UNINITIALIZED
    credential: Optional[Credential] = None
    schema: Optional[SchemaDescription] = None
    schema_text: str = ""


@dataclass
class TurnResult:
    question: str
    query: Optional[str] = None
    result: Optional[ResultTable] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None


class ChatOrchestrator:
    """Runs one chat session: initialize once, then one turn per question.

    Turns are serialized per session. A failing turn is reported in its
    ``TurnResult`` and leaves the session ready for the next question.
    """

    def __init__(
        self,
        connector: Connector,
        translator: QueryTranslator,
        credentials: CredentialProvider,
        server: str,
        prompt_path: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._connector = connector
        self._translator = translator
        self._credentials = credentials
        self._server = server
        self._prompt_path = prompt_path
        self._on_progress = on_progress
        self._turn_lock = Lock()
        self.state = SessionState()

    @classmethod
    def from_settings(
        cls,
        config: Settings = settings,
        on_progress: Optional[ProgressCallback] = None,
    ) -> "ChatOrchestrator":
        credentials = CredentialProvider()
        return cls(
            connector=AnalysisServicesConnector(credentials, config),
            translator=QueryTranslator(config),
            credentials=credentials,
            server=config.aas_server,
            prompt_path=config.prompt_path,
            on_progress=on_progress,
        )

    @property
    def status(self) -> SessionStatus:
        return self.state.status

    @property
    def schema(self) -> Optional[SchemaDescription]:
        return self.state.schema

    def _notify(self, message: str, sink: Optional[List[str]] = None) -> None:
        logger.debug("progress: %s", message)
        if sink is not None:
            sink.append(message)
        if self._on_progress is not None:
            self._on_progress(message)

    def initialize(self) -> List[str]:
        """Acquire a token and load the model schema.

        Failures propagate: a session without credential and schema is unusable.
        """
        logs: List[str] = []
        with self._turn_lock:
            if self.state.status not in (SessionStatus.UNINITIALIZED, SessionStatus.CLOSED):
                return logs

            self._notify(f"Requesting token for scope: {scope_for_server(self._server)}", logs)
            self.state.credential = self._credentials.acquire_token(self._server)
            expires = self.state.credential.expires_on.isoformat()
            self._notify(f"Token received. Expires: {expires}", logs)
            self._notify(f"Connecting to AAS: {self._server}", logs)

            try:
                with self._connector.connect() as conn:
                    self._notify("Connection opened. Fetching schema...", logs)
                    schema = fetch_schema(conn, lambda msg: self._notify(msg, logs))
            except ChatPipelineError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.error("Connection to %s failed: %s", self._server, exc)
                raise SchemaFetchError(f"Connection failed: {exc}") from exc

            self.state.schema = schema
            self.state.schema_text = schema.to_prompt_text()
            self.state.status = SessionStatus.READY
            self._notify("Initialization complete.", logs)
            logger.info("Session ready with %d tables", len(schema.tables))
        return logs

    def ask(self, question: str) -> TurnResult:
        with self._turn_lock:
            if self.state.status != SessionStatus.READY:
                raise RuntimeError("Service not initialized.")

            turn = TurnResult(question=question)
            try:
                self.state.status = SessionStatus.TRANSLATING
                self._notify("Generating DAX...", turn.logs)
                system_prompt = compose_system_prompt(
                    load_template(self._prompt_path), self.state.schema_text
                )
                generated = self._translator.translate(system_prompt, question)
                turn.query = generated.sanitized
                self._notify(f"Generated DAX: {generated.sanitized}", turn.logs)

                self.state.status = SessionStatus.EXECUTING
                self._notify("Executing DAX...", turn.logs)
                turn.result = run_dax(self._connector, generated.sanitized)
                self._notify("Execution complete.", turn.logs)
            except ChatPipelineError as exc:
                self.state.status = SessionStatus.FAILED
                logger.error("Turn failed (%s): %s", exc.kind, exc)
                turn.error = str(exc)
                turn.error_kind = exc.kind
                self._notify(f"Error: {exc}", turn.logs)
            finally:
                self.state.credential = self._credentials.cached(self._server)
                self.state.status = SessionStatus.READY
            return turn

    def close(self) -> None:
        with self._turn_lock:
            self._credentials.clear()
            self.state = SessionState(status=SessionStatus.CLOSED)
