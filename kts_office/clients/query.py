"""Query primitives shared by the live backend client and the in-memory store."""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

_OPERATORS = {"eq", "neq", "gt", "gte", "lt", "lte", "in", "like", "ilike", "is"}


def _render(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def comparable(value: Any) -> Any:
    """Normalise ISO timestamps so string and datetime values compare correctly."""

    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str) and len(value) >= 10 and value[4:5] == "-" and value[7:8] == "-":
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported filter operator '{self.op}'")

    def to_param(self) -> Tuple[str, str]:
        if self.op == "in":
            items = []
            for item in self.value:
                rendered = _render(item)
                if any(ch in rendered for ch in ',()"'):
                    rendered = '"' + rendered.replace('"', '\\"') + '"'
                items.append(rendered)
            return self.column, f"in.({','.join(items)})"
        if self.op in {"like", "ilike"}:
            return self.column, f"{self.op}.{str(self.value).replace('%', '*')}"
        return self.column, f"{self.op}.{_render(self.value)}"

    def matches(self, row: Dict[str, Any]) -> bool:
        actual = row.get(self.column)
        if self.op == "is":
            return actual is self.value or actual == self.value
        if self.op == "in":
            return actual in list(self.value)
        if self.op in {"like", "ilike"}:
            if actual is None:
                return False
            pattern = str(self.value).replace("*", "%").replace("%", "*")
            if self.op == "ilike":
                return fnmatch.fnmatchcase(str(actual).lower(), pattern.lower())
            return fnmatch.fnmatchcase(str(actual), pattern)
        if self.op == "eq":
            return actual == self.value or (
                actual is not None and comparable(actual) == comparable(self.value)
            )
        if self.op == "neq":
            return not Filter(self.column, "eq", self.value).matches(row)
        if actual is None:
            return False
        left, right = comparable(actual), comparable(self.value)
        try:
            if self.op == "gt":
                return left > right
            if self.op == "gte":
                return left >= right
            if self.op == "lt":
                return left < right
            return left <= right
        except TypeError:
            return False


@dataclass(frozen=True)
class Order:
    column: str
    ascending: bool = True

    def to_param(self) -> str:
        return f"{self.column}.{'asc' if self.ascending else 'desc'}.nullslast"


@dataclass
class ChangeEvent:
    """A row change delivered by ``subscribe``."""

    table: str
    event_type: str  # INSERT | UPDATE | DELETE
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class DataBackend(Protocol):
    """Generic data-access capability offered by the hosted backend."""

    use_mock_data: bool

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        *,
        order: Order | Sequence[Order] | None = None,
        limit: int | None = None,
    ) -> List[Dict[str, Any]]:
        ...

    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def update(
        self, table: str, filters: Sequence[Filter], patch: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        ...

    async def upsert(
        self, table: str, record: Dict[str, Any], *, on_conflict: str
    ) -> Dict[str, Any]:
        ...

    async def delete(self, table: str, filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        ...

    def subscribe(
        self, table: str, event_types: Iterable[str] = ("INSERT",)
    ) -> AsyncIterator[ChangeEvent]:
        ...

    async def upload_file(
        self, bucket: str, key: str, data: bytes, *, content_type: str = "application/octet-stream"
    ) -> str:
        ...


def as_orders(order: Order | Sequence[Order] | None) -> List[Order]:
    if order is None:
        return []
    if isinstance(order, Order):
        return [order]
    return list(order)
