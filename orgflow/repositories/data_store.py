from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock, RLock
from typing import Any, Optional

from orgflow.core.errors import StoreUnavailable
from orgflow.models.employee import Employee
from orgflow.models.request import ServiceRequest


logger = logging.getLogger(__name__)


class JsonCollection:
    """One versioned collection persisted as a JSON array on disk."""

    def __init__(self, data_dir: Path, key: str) -> None:
        self.key = key
        self.path = Path(data_dir) / f"{key}.json"

    def load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreUnavailable(f"Could not read collection '{self.key}': {exc}") from exc
        if not isinstance(raw, list):
            raise StoreUnavailable(f"Collection '{self.key}' is not a list")
        return raw

    def save(self, rows: list[dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.key}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(rows, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StoreUnavailable(f"Could not persist collection '{self.key}': {exc}") from exc


class _RecordStore:
    def __init__(self, backend: Optional[JsonCollection] = None, lock_timeout: float = 5.0) -> None:
        self.lock = RLock()
        self.backend = backend
        self.lock_timeout = lock_timeout
        self._rows: dict[str, dict[str, Any]] = {}
        if backend is not None:
            for row in backend.load():
                self._rows[str(row["id"])] = row
            logger.info("Loaded %d rows from %s", len(self._rows), backend.path)

    @contextmanager
    def locked(self) -> Iterator[None]:
        if not self.lock.acquire(timeout=self.lock_timeout):
            raise StoreUnavailable("Timed out waiting for store lock")
        try:
            yield
        finally:
            self.lock.release()

    def _commit(self, rows: dict[str, dict[str, Any]]) -> None:
        # Persist first; the in-memory view only changes if the write succeeded.
        if self.backend is not None:
            self.backend.save(list(rows.values()))
        self._rows = rows

    def _put_row(self, row: dict[str, Any]) -> None:
        with self.locked():
            rows = dict(self._rows)
            rows[str(row["id"])] = row
            self._commit(rows)

    def _snapshot(self) -> list[dict[str, Any]]:
        with self.locked():
            return list(self._rows.values())

    def _get_row(self, record_id: str) -> Optional[dict[str, Any]]:
        with self.locked():
            return self._rows.get(record_id)

    def __len__(self) -> int:
        return len(self._rows)


class DirectoryStore(_RecordStore):
    """Authoritative collection of employees; ``managerId`` forms the hierarchy."""

    def list(self) -> list[Employee]:
        return [Employee.model_validate(row) for row in self._snapshot()]

    def get(self, employee_id: str) -> Optional[Employee]:
        row = self._get_row(employee_id)
        return Employee.model_validate(row) if row is not None else None

    def put(self, employee: Employee) -> None:
        self._put_row(employee.model_dump(mode="json", by_alias=True))

    def remove(self, employee_id: str) -> None:
        with self.locked():
            if employee_id not in self._rows:
                return
            rows = dict(self._rows)
            del rows[employee_id]
            self._commit(rows)

    def replace_all(self, employees: list[Employee]) -> None:
        with self.locked():
            self._commit(
                {e.id: e.model_dump(mode="json", by_alias=True) for e in employees}
            )

    def ids(self) -> list[str]:
        with self.locked():
            return list(self._rows.keys())


class RequestStore(_RecordStore):
    """Flat list of service requests; rows are never deleted."""

    def __init__(self, backend: Optional[JsonCollection] = None, lock_timeout: float = 5.0) -> None:
        super().__init__(backend=backend, lock_timeout=lock_timeout)
        self._registry_lock = Lock()
        self._row_locks: dict[str, Lock] = {}
        self._row_waiters: dict[str, int] = {}

    def list(self) -> list[ServiceRequest]:
        return [ServiceRequest.model_validate(row) for row in self._snapshot()]

    def get(self, request_id: str) -> Optional[ServiceRequest]:
        row = self._get_row(request_id)
        return ServiceRequest.model_validate(row) if row is not None else None

    def put(self, request: ServiceRequest) -> None:
        self._put_row(request.model_dump(mode="json", by_alias=True))

    @contextmanager
    def row_lock(self, request_id: str) -> Iterator[None]:
        """Exclusive lock for one request id.

        A lock lives only while some caller holds or waits on it, so lookups of
        unknown ids leave nothing behind.
        """
        with self._registry_lock:
            lock = self._row_locks.setdefault(request_id, Lock())
            self._row_waiters[request_id] = self._row_waiters.get(request_id, 0) + 1
        try:
            if not lock.acquire(timeout=self.lock_timeout):
                raise StoreUnavailable(f"Timed out waiting for request {request_id}")
            try:
                yield
            finally:
                lock.release()
        finally:
            with self._registry_lock:
                self._row_waiters[request_id] -= 1
                if not self._row_waiters[request_id]:
                    del self._row_waiters[request_id]
                    del self._row_locks[request_id]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
