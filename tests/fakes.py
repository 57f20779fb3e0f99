"""In-memory stand-in for the Supabase client.

Implements the subset of the PostgREST query builder, storage and auth APIs
the services use, over plain lists of dicts. Tests seed rows directly into
``FakeSupabase.tables`` and inspect them after the call.

    db = FakeSupabase()
    db.seed("markets", [{"name": "Ariaria"}])
    db.fail_table("agents")                      # every query on agents raises
    db.rpc_handlers["increment_category_view"] = lambda params: None
"""

import re
import threading
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Callable, Optional
from uuid import uuid4

from postgrest.exceptions import APIError


def api_error(code: str, message: str = "fake backend error") -> APIError:
    return APIError({"message": message, "code": code, "hint": None, "details": None})


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return str(value).lower()
    return str(value)


def _comparable(value: Any) -> Any:
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value


def _like(pattern: str) -> re.Pattern:
    parts = [re.escape(part) for part in pattern.split("%")]
    return re.compile(".*".join(parts), re.IGNORECASE | re.DOTALL)


def _sort_key(value: Any) -> tuple:
    value = _comparable(value)
    if value is None:
        return (1, "")
    if isinstance(value, datetime):
        return (0, value.timestamp())
    return (0, value)


class FakeResponse:
    def __init__(self, data: Any, count: Optional[int] = None):
        self.data = data
        self.count = count


class FakeQuery:
    """Chainable table query; filters apply to select, update and delete."""

    def __init__(self, db: "FakeSupabase", table: str):
        self._db = db
        self._table = table
        self._operation = "select"
        self._payload: Any = None
        self._filters: list[Callable[[dict], bool]] = []
        self._negate = False
        self._order: list[tuple[str, bool]] = []
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None
        self._count: Optional[str] = None

    # -- operations ---------------------------------------------------------

    def select(self, columns: str = "*", count: Optional[str] = None) -> "FakeQuery":
        self._count = count
        return self

    def insert(self, rows: Any) -> "FakeQuery":
        self._operation = "insert"
        self._payload = rows
        return self

    def update(self, data: dict) -> "FakeQuery":
        self._operation = "update"
        self._payload = data
        return self

    def delete(self) -> "FakeQuery":
        self._operation = "delete"
        return self

    # -- filters ------------------------------------------------------------

    @property
    def not_(self) -> "FakeQuery":
        self._negate = True
        return self

    def _add(self, predicate: Callable[[dict], bool]) -> "FakeQuery":
        if self._negate:
            self._negate = False
            self._filters.append(lambda row: not predicate(row))
        else:
            self._filters.append(predicate)
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        return self._add(lambda row: _text(row.get(column)) == _text(value))

    def in_(self, column: str, values: list) -> "FakeQuery":
        wanted = {_text(v) for v in values}
        return self._add(lambda row: _text(row.get(column)) in wanted)

    def gte(self, column: str, value: Any) -> "FakeQuery":
        bound = _comparable(value)
        return self._add(
            lambda row: row.get(column) is not None and _comparable(row.get(column)) >= bound
        )

    def lte(self, column: str, value: Any) -> "FakeQuery":
        bound = _comparable(value)
        return self._add(
            lambda row: row.get(column) is not None and _comparable(row.get(column)) <= bound
        )

    def ilike(self, column: str, pattern: str) -> "FakeQuery":
        regex = _like(pattern)
        return self._add(
            lambda row: row.get(column) is not None and bool(regex.fullmatch(str(row.get(column))))
        )

    def is_(self, column: str, value: str) -> "FakeQuery":
        if value == "null":
            return self._add(lambda row: row.get(column) is None)
        return self._add(lambda row: _text(row.get(column)) == value)

    def or_(self, expression: str) -> "FakeQuery":
        """Supports ``col.eq.value``, ``col.in.(a,b)`` and ``col.ilike.pattern`` terms."""
        terms = []
        for term in re.split(r",(?![^(]*\))", expression):
            column, op, value = term.split(".", 2)
            if op == "eq":
                terms.append(lambda row, c=column, v=value: _text(row.get(c)) == v)
            elif op == "in":
                wanted = set(value.strip("()").split(","))
                terms.append(lambda row, c=column, w=wanted: _text(row.get(c)) in w)
            elif op == "ilike":
                regex = _like(value)
                terms.append(
                    lambda row, c=column, r=regex: row.get(c) is not None
                    and bool(r.fullmatch(str(row.get(c))))
                )
            else:
                raise ValueError(f"unsupported or_ operator: {op}")
        return self._add(lambda row: any(term(row) for term in terms))

    # -- modifiers ----------------------------------------------------------

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order.append((column, desc))
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._range = (start, end)
        return self

    def limit(self, size: int) -> "FakeQuery":
        self._limit = size
        return self

    # -- execution ----------------------------------------------------------

    def _matches(self, row: dict) -> bool:
        return all(predicate(row) for predicate in self._filters)

    def execute(self) -> FakeResponse:
        self._db.calls.append((self._table, self._operation))
        failure = self._db.failures.get(self._table)
        if failure and (failure[1] is None or self._operation in failure[1]):
            raise api_error(failure[0])

        with self._db.lock:
            rows = self._db.tables.setdefault(self._table, [])
            if self._operation == "insert":
                return FakeResponse(self._db.insert_rows(self._table, self._payload))
            if self._operation == "update":
                updated = []
                for row in rows:
                    if self._matches(row):
                        row.update(self._payload)
                        updated.append(dict(row))
                return FakeResponse(updated)
            if self._operation == "delete":
                removed = [row for row in rows if self._matches(row)]
                self._db.tables[self._table] = [row for row in rows if not self._matches(row)]
                return FakeResponse([dict(row) for row in removed])

            selected = [dict(row) for row in rows if self._matches(row)]

        for column, desc in reversed(self._order):
            selected.sort(key=lambda row: _sort_key(row.get(column)), reverse=desc)
        count = len(selected) if self._count == "exact" else None
        if self._range is not None:
            start, end = self._range
            selected = selected[start:end + 1]
        if self._limit is not None:
            selected = selected[: self._limit]
        if self._db.max_rows is not None:
            selected = selected[: self._db.max_rows]
        return FakeResponse(selected, count)


class FakeRpc:
    def __init__(self, db: "FakeSupabase", name: str, params: dict):
        self._db = db
        self._name = name
        self._params = params

    def execute(self) -> FakeResponse:
        self._db.rpc_calls.append((self._name, self._params))
        handler = self._db.rpc_handlers.get(self._name)
        if handler is None:
            raise api_error("PGRST202", f"Could not find the function public.{self._name}")
        return FakeResponse(handler(self._params))


# =============================================================================
# Storage & Auth
# =============================================================================


class FakeBucket:
    def __init__(self, storage: "FakeStorage", name: str):
        self._storage = storage
        self._name = name

    def upload(self, path: str, file: bytes, file_options: Optional[dict] = None) -> dict:
        if self._storage.fail_uploads:
            raise RuntimeError("storage unavailable")
        self._storage.objects[(self._name, path)] = file
        return {"Key": f"{self._name}/{path}"}

    def get_public_url(self, path: str) -> str:
        return f"{FakeStorage.BASE_URL}/storage/v1/object/public/{self._name}/{path}"

    def remove(self, paths: list[str]) -> list[dict]:
        for path in paths:
            self._storage.objects.pop((self._name, path), None)
        return [{"name": path} for path in paths]


class FakeStorage:
    BASE_URL = "https://fake.supabase.co"

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.fail_uploads = False

    def from_(self, bucket: str) -> FakeBucket:
        return FakeBucket(self, bucket)


class FakeAuthAdmin:
    def __init__(self):
        self.password_updates: list[tuple[str, dict]] = []
        self.fail = False

    def update_user_by_id(self, uid: str, attributes: dict) -> SimpleNamespace:
        if self.fail:
            raise RuntimeError("auth service unavailable")
        self.password_updates.append((uid, attributes))
        return SimpleNamespace(user=SimpleNamespace(id=uid))


class FakeAuth:
    def __init__(self):
        self.tokens: dict[str, SimpleNamespace] = {}
        self.admin = FakeAuthAdmin()

    def add_token(self, token: str, user_id: str, email: Optional[str] = None) -> None:
        self.tokens[token] = SimpleNamespace(id=user_id, email=email, user_metadata={})

    def get_user(self, jwt: Optional[str] = None) -> SimpleNamespace:
        if jwt not in self.tokens:
            raise RuntimeError("invalid JWT")
        return SimpleNamespace(user=self.tokens[jwt])


# =============================================================================
# Client
# =============================================================================


class FakeSupabase:
    """Drop-in for ``supabase.Client`` in service and route tests."""

    UNIQUE_COLUMNS = {"markets": ("name",), "business_categories": ("title",)}

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.failures: dict[str, tuple[str, Optional[set[str]]]] = {}
        self.rpc_handlers: dict[str, Callable[[dict], Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.rpc_calls: list[tuple[str, dict]] = []
        self.storage = FakeStorage()
        self.auth = FakeAuth()
        self.lock = threading.RLock()
        # PostgREST max-rows: caps returned rows, never the exact count
        self.max_rows: Optional[int] = None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Optional[dict] = None) -> FakeRpc:
        return FakeRpc(self, name, params or {})

    # -- test helpers -------------------------------------------------------

    def seed(self, table: str, rows: list[dict]) -> list[dict]:
        with self.lock:
            return self.insert_rows(table, rows)

    def rows(self, table: str) -> list[dict]:
        return self.tables.get(table, [])

    def fail_table(
        self,
        table: str,
        code: str = "XX000",
        operations: Optional[set[str]] = None,
    ) -> None:
        """Make queries on ``table`` raise APIError (optionally only some operations)."""
        self.failures[table] = (code, operations)

    def insert_rows(self, table: str, rows: Any) -> list[dict]:
        rows = rows if isinstance(rows, list) else [rows]
        stored = self.tables.setdefault(table, [])
        inserted = []
        for row in rows:
            new_row = dict(row)
            for column in self.UNIQUE_COLUMNS.get(table, ()):
                if any(_text(existing.get(column)) == _text(new_row.get(column)) for existing in stored):
                    raise api_error("23505", f"duplicate key value violates unique constraint on {column}")
            new_row.setdefault("id", str(uuid4()))
            new_row.setdefault("created_at", datetime.now(timezone.utc).isoformat())
            stored.append(new_row)
            inserted.append(dict(new_row))
        return inserted
