from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from threading import RLock
from typing import Callable, Dict, List, Optional

from aaschat.config import settings
from aaschat.services.chat_orchestrator import ChatOrchestrator, ProgressCallback
from aaschat.utils.logger import logger

OrchestratorFactory = Callable[..., ChatOrchestrator]


@dataclass
class ChatSession:
    session_id: str
    orchestrator: ChatOrchestrator
    created_at: float = field(default_factory=lambda: time.time())
    last_used_at: float = field(default_factory=lambda: time.time())

    def touch(self) -> None:
        self.last_used_at = time.time()


def _default_factory(on_progress: Optional[ProgressCallback] = None) -> ChatOrchestrator:
    missing = settings.missing()
    if missing:
        raise RuntimeError(f"Missing configuration: {', '.join(missing)}")
    return ChatOrchestrator.from_settings(settings, on_progress=on_progress)


class SessionManager:
    """In-memory store of initialized chat sessions."""

    def __init__(self, factory: OrchestratorFactory = _default_factory) -> None:
        self._sessions: Dict[str, ChatSession] = {}
        self._lock = RLock()
        self.factory = factory

    def _make_session_id(self) -> str:
        return uuid.uuid4().hex

    async def create_session(self) -> Dict:
        orchestrator = self.factory()
        # Token negotiation and schema fetch are blocking network calls
        logs: List[str] = await asyncio.to_thread(orchestrator.initialize)

        session = ChatSession(session_id=self._make_session_id(), orchestrator=orchestrator)
        with self._lock:
            self._sessions[session.session_id] = session

        schema = orchestrator.schema
        return {
            "session_id": session.session_id,
            "tables": schema.table_names if schema else [],
            "logs": logs,
        }

    def get_session(self, session_id: str) -> ChatSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if not session:
            raise KeyError("Session not found or expired")
        session.touch()
        return session

    def close_session(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if not session:
            raise KeyError("Session not found or expired")
        session.orchestrator.close()

    def maybe_cleanup(self) -> None:
        ttl_seconds = settings.session_ttl_minutes * 60
        now = time.time()
        with self._lock:
            expired = [sid for sid, sess in self._sessions.items() if now - sess.last_used_at > ttl_seconds]
            sessions = [self._sessions.pop(sid) for sid in expired]
        # close() waits for an in-flight turn; keep it outside the store lock
        for session in sessions:
            session.orchestrator.close()
        if sessions:
            logger.info("Cleaned up %d expired sessions", len(sessions))


session_manager = SessionManager()
