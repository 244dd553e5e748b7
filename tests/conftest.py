"""Shared fixtures: an in-process stand-in for the Analysis Services server,
the identity backend and the chat-completion service. No network access."""

from collections import namedtuple
from decimal import Decimal
from types import SimpleNamespace

import pytest
from azure.core.credentials import AccessToken

from aaschat.config import DEFAULT_PROMPT_PATH, Settings
from aaschat.services.chat_orchestrator import ChatOrchestrator
from aaschat.services.connection import AnalysisServicesConnector, RawResult
from aaschat.services.credentials import CredentialProvider
from aaschat.services.llm_client import QueryTranslator
from aaschat.services.schema_introspector import COLUMNS_QUERY, TABLES_QUERY

SERVER = "asazure://westus.asazure.windows.net/myserver"
DATABASE = "AdventureWorks"

TOTAL_SALES_DAX = (
    "EVALUATE SUMMARIZECOLUMNS('Date'[Year], \"Total Sales\", "
    "SUM('Internet Sales'[Sales Amount]))"
)
FENCED_TOTAL_SALES = f"```dax\n{TOTAL_SALES_DAX}\n```"

TABLES = (["ID", "Name"], [(1, "Internet Sales"), (2, "Date"), (3, "")])
COLUMNS = (
    ["ID", "TableID", "ExplicitName"],
    [(10, 1, "Sales Amount"), (11, 2, "Year"), (12, 99, "Orphan")],
)
SALES_BY_YEAR = (
    ["Year", "Total Sales"],
    [(2023, Decimal("1000.50")), (2024, Decimal("2000.25"))],
)

NO_CHOICES = object()

Description = namedtuple("Description", "name type_code")


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeTokenCredential:
    def __init__(self, clock, lifetime: int = 3600) -> None:
        self.clock = clock
        self.lifetime = lifetime
        self.calls = 0
        self.scopes = []
        self.error = None

    def get_token(self, *scopes, **kwargs):
        if self.error is not None:
            raise self.error
        self.calls += 1
        self.scopes.append(scopes)
        return AccessToken(f"token-{self.calls}", int(self.clock() + self.lifetime))


class FakeEngine:
    """Answers statements from a table of canned results; '*' matches any DAX."""

    def __init__(self) -> None:
        self.results = {TABLES_QUERY: TABLES, COLUMNS_QUERY: COLUMNS, "*": SALES_BY_YEAR}
        self.executed = []
        self.opened = []
        self.closed = 0
        self.open_error = None

    def respond(self, statement):
        self.executed.append(statement)
        outcome = self.results.get(statement, self.results["*"])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeCursor:
    def __init__(self, engine: FakeEngine) -> None:
        self.engine = engine
        self._columns = []
        self._rows = []

    def execute(self, statement):
        self._columns, self._rows = self.engine.respond(statement)
        return self

    def fetchall(self):
        return list(self._rows)

    @property
    def description(self):
        return [Description(name, None) for name in self._columns]

    def close(self):
        pass


class FakeAdomdConnection:
    def __init__(self, engine: FakeEngine) -> None:
        self.engine = engine

    def cursor(self):
        return FakeCursor(self.engine)

    def close(self):
        self.engine.closed += 1


class FakeConnector(AnalysisServicesConnector):
    """Real connector whose ADOMD client is replaced by the fake engine."""

    def __init__(self, credentials, engine: FakeEngine, config: Settings) -> None:
        super().__init__(credentials, config)
        self.engine = engine

    def _open(self, conn_str):
        if self.engine.open_error is not None:
            raise self.engine.open_error
        self.engine.opened.append(conn_str)
        return FakeAdomdConnection(self.engine)


class StaticConnection:
    """Open connection double returning fixed catalogs."""

    def __init__(self, results) -> None:
        self.results = results

    def execute(self, statement):
        outcome = self.results[statement]
        if isinstance(outcome, Exception):
            raise outcome
        columns, rows = outcome
        return RawResult(columns=list(columns), rows=list(rows))


class FakeCompletions:
    def __init__(self, replies) -> None:
        self.replies = list(replies)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        if reply is NO_CHOICES:
            return SimpleNamespace(choices=[])
        message = SimpleNamespace(role="assistant", content=reply)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class FakeOpenAIClient:
    def __init__(self, *replies) -> None:
        self.completions = FakeCompletions(replies or [FENCED_TOTAL_SALES])
        self.chat = SimpleNamespace(completions=self.completions)


@pytest.fixture
def config():
    return Settings(
        aas_server=SERVER,
        aas_database=DATABASE,
        openai_api_key="test-key",
        openai_model="dax-deployment",
        prompt_path=DEFAULT_PROMPT_PATH,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def token_credential(clock):
    return FakeTokenCredential(clock)


@pytest.fixture
def credentials(token_credential, clock):
    return CredentialProvider(token_credential, clock=clock)


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def connector(credentials, engine, config):
    return FakeConnector(credentials, engine, config)


@pytest.fixture
def llm():
    return FakeOpenAIClient()


@pytest.fixture
def translator(config, llm):
    return QueryTranslator(config, client=llm)


@pytest.fixture
def progress():
    return []


@pytest.fixture
def make_orchestrator(connector, translator, credentials, config):
    def factory(on_progress=None, prompt_path=None):
        return ChatOrchestrator(
            connector=connector,
            translator=translator,
            credentials=credentials,
            server=config.aas_server,
            prompt_path=prompt_path or config.prompt_path,
            on_progress=on_progress,
        )

    return factory


@pytest.fixture
def orchestrator(make_orchestrator, progress):
    return make_orchestrator(on_progress=progress.append)


@pytest.fixture
def ready_orchestrator(orchestrator):
    orchestrator.initialize()
    return orchestrator
