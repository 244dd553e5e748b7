from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse

from azure.identity import DefaultAzureCredential

from aaschat.services.errors import AuthenticationError
from aaschat.utils.logger import logger


@dataclass(frozen=True)
class Credential:
    token: str
    expires_at: float
    scope: str

    def is_expired(self, now: Optional[float] = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.expires_at

    @property
    def expires_on(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)


def scope_for_server(server: str) -> str:
    """Token scope for an Analysis Services endpoint.

    ``asazure://westus.asazure.windows.net/myserver`` becomes
    ``https://westus.asazure.windows.net/.default``.
    """
    host = urlparse(server).hostname
    if not host:
        raise AuthenticationError(f"Cannot derive a token scope from server '{server}'")
    return f"https://{host}/.default"


class CredentialProvider:
    """Caches bearer tokens per scope and reacquires them once they expire."""

    def __init__(
        self,
        token_credential: Any | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._token_credential = token_credential
        self._clock = clock
        self._cache: Dict[str, Credential] = {}
        self._lock = RLock()

    def _credential(self) -> Any:
        if self._token_credential is None:
            self._token_credential = DefaultAzureCredential()
        return self._token_credential

    def cached(self, server: str) -> Credential | None:
        with self._lock:
            return self._cache.get(scope_for_server(server))

    def acquire_token(self, server: str) -> Credential:
        scope = scope_for_server(server)
        with self._lock:
            current = self._cache.get(scope)
            if current is not None and not current.is_expired(self._clock()):
                return current

            logger.info("Requesting token for scope: %s", scope)
            try:
                access_token = self._credential().get_token(scope)
            except Exception as exc:  # noqa: BLE001
                logger.error("Token request for %s failed: %s", scope, exc)
                raise AuthenticationError(f"Authentication failed: {exc}") from exc

            credential = Credential(
                token=access_token.token,
                expires_at=float(access_token.expires_on),
                scope=scope,
            )
            self._cache[scope] = credential
            logger.info("Token received. Expires: %s", credential.expires_on.isoformat())
            return credential

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()
