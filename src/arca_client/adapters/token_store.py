"""
TokenStore adapters — optional persistence for WSAA tickets.

WSAA refuses to issue a second ticket for the same certificate and service
while the first is still valid, so processes that restart often should
share tickets through a store.

  InMemoryTokenStore → process-local dict (tests, single long-lived process)
  FileTokenStore     → one JSON file per service, CUIT and environment

Both implement the TokenStore port. Neither filters expired tickets: the
ticket manager decides validity.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path

import structlog

from arca_client.domain.models import AuthenticationTicket

log = structlog.get_logger()


class InMemoryTokenStore:
    """Keep tickets in a dict keyed by (tax_id, environment)."""

    def __init__(self) -> None:
        self._tickets: dict[tuple[str, str], AuthenticationTicket] = {}

    async def get(self, tax_id: str, environment: str) -> AuthenticationTicket | None:
        return self._tickets.get((tax_id, str(environment)))

    async def save(self, tax_id: str, environment: str, ticket: AuthenticationTicket) -> None:
        self._tickets[(tax_id, str(environment))] = ticket


class FileTokenStore:
    """
    Persist tickets as JSON files under `directory`.

    File name: ticket_{service}_{tax_id}_{environment}.json. Writes go through a
    temporary file and os.replace so readers never see a partial ticket.
    File I/O runs in a worker thread to keep the event loop free.
    """

    def __init__(self, directory: Path | str, service: str = "wsfe") -> None:
        self._directory = Path(directory)
        self._service = service

    def _path(self, tax_id: str, environment: str) -> Path:
        return self._directory / f"ticket_{self._service}_{tax_id}_{environment}.json"

    async def get(self, tax_id: str, environment: str) -> AuthenticationTicket | None:
        return await asyncio.to_thread(self._read, self._path(tax_id, str(environment)))

    async def save(self, tax_id: str, environment: str, ticket: AuthenticationTicket) -> None:
        await asyncio.to_thread(self._write, self._path(tax_id, str(environment)), ticket)

    @staticmethod
    def _read(path: Path) -> AuthenticationTicket | None:
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        return AuthenticationTicket.from_dict(data)

    def _write(self, path: Path, ticket: AuthenticationTicket) -> None:
        self._directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=".ticket-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(ticket.to_dict(), handle, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        log.debug("token_store.saved", path=str(path))
