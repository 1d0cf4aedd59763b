from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, AsyncIterator, DefaultDict, Dict, Iterable, List, Optional, Sequence, Set

from kts_office.clients.query import ChangeEvent, Filter, Order, as_orders, comparable
from kts_office.services.exceptions import ConflictError


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


_ID_PREFIXES = {
    "appointments": "APT",
    "admin_permissions": "PRM",
    "blog_posts": "BLOG",
    "contact_messages": "MSG",
    "coupons": "CPN",
    "deletion_requests": "DEL",
    "invoices": "INV",
    "notification_watermarks": "WM",
    "notifications": "NTF",
    "page_views": "PV",
    "profiles": "PRF",
    "services": "SVC",
    "site_settings": "SET",
    "team_members": "TEAM",
    "testimonials": "TST",
    "user_roles": "ROLE",
}

UNIQUE_KEYS: Dict[str, tuple[str, ...]] = {
    "site_settings": ("key",),
    "coupons": ("code",),
    "invoices": ("invoice_number",),
    "appointments": ("reference_id",),
    "admin_permissions": ("user_id",),
    "notification_watermarks": ("session_id",),
    "blog_posts": ("slug",),
}


class _Table:
    def __init__(self, name: str) -> None:
        self.name = name
        self._prefix = _ID_PREFIXES.get(name, name[:3].upper())
        self._counter = itertools.count(1)
        self.rows: Dict[str, Dict[str, Any]] = {}

    def next_id(self) -> str:
        return f"{self._prefix}-{next(self._counter):05d}"


class MockDataStore:
    """In-memory stand-in for the hosted backend used in mock mode and tests.

    Implements the same coroutine surface as ``BackendClient`` so services do
    not need to know which one they talk to. Unique keys are enforced per
    table and every write is published to subscribers.
    """

    use_mock_data = True

    def __init__(self, *, seed: bool = True) -> None:
        self._tables: Dict[str, _Table] = {}
        self._subscribers: DefaultDict[str, List[asyncio.Queue]] = defaultdict(list)
        self.files: Dict[str, bytes] = {}
        if seed:
            self._seed_defaults()

    def table(self, name: str) -> _Table:
        if name not in self._tables:
            self._tables[name] = _Table(name)
        return self._tables[name]

    def rows(self, name: str) -> List[Dict[str, Any]]:
        return [dict(row) for row in self.table(name).rows.values()]

    def _seed_defaults(self) -> None:
        settings = {
            "site_name": "Krishna Tech Solutions",
            "contact_email": "krishnatechsolutions2024@gmail.com",
            "contact_phone": "+91 7026292525",
            "contact_address": "Main Road, Karnataka",
            "booking_popup_enabled": "true",
            "booking_popup_text": "Book Appointment",
            "razorpay_enabled": "false",
            "razorpay_key_id": "",
            "razorpay_test_mode": "true",
        }
        for key, value in settings.items():
            self._put("site_settings", {"key": key, "value": value})

        services = [
            ("Data Recovery", 999.0, "Professional data recovery from HDDs, SSDs, USB drives and memory cards."),
            ("Windows Upgrade", 999.0, "Seamless Windows upgrades keeping your files and settings intact."),
            ("Computer Repair", 299.0, "Expert hardware and software repairs for all brands."),
            ("Laptop Screen Replacement", 2499.0, "Genuine replacement panels with warranty."),
            ("Virus Removal", 499.0, "Malware cleanup and security hardening."),
        ]
        for order, (name, price, description) in enumerate(services, start=1):
            self._put(
                "services",
                {
                    "name": name,
                    "price": price,
                    "description": description,
                    "duration_minutes": 180,
                    "is_active": True,
                    "is_visible": True,
                    "display_order": order,
                },
            )

        self._put("user_roles", {"user_id": "usr-superadmin", "role": "super_admin"})
        self._put(
            "profiles",
            {
                "user_id": "usr-superadmin",
                "full_name": "Krishna Admin",
                "email": "krishnatechsolutions2024@gmail.com",
                "phone": "+91 7026292525",
            },
        )

    def _put(self, table_name: str, record: Dict[str, Any]) -> Dict[str, Any]:
        table = self.table(table_name)
        row = dict(record)
        row.setdefault("id", table.next_id())
        now = _utc_now_iso()
        row.setdefault("created_at", now)
        row.setdefault("updated_at", row["created_at"])
        self._check_unique(table, row, ignore_id=None)
        table.rows[row["id"]] = row
        return dict(row)

    def _check_unique(
        self, table: _Table, row: Dict[str, Any], *, ignore_id: Optional[str]
    ) -> None:
        if row.get("id") in table.rows and row.get("id") != ignore_id:
            raise ConflictError(f"Duplicate id {row['id']} in {table.name}")
        for column in UNIQUE_KEYS.get(table.name, ()):
            value = row.get(column)
            if value is None:
                continue
            for existing in table.rows.values():
                if existing["id"] == ignore_id:
                    continue
                if existing.get(column) == value:
                    raise ConflictError(
                        f"Duplicate value for {table.name}.{column}: {value}"
                    )

    def _publish(self, event: ChangeEvent) -> None:
        for queue in list(self._subscribers[event.table]):
            queue.put_nowait(event)

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Sequence[Filter]) -> bool:
        return all(item.matches(row) for item in filters)

    @staticmethod
    def _sort(rows: List[Dict[str, Any]], orders: List[Order]) -> List[Dict[str, Any]]:
        # Stable sorts applied from the last key to the first; nulls go last.
        for order in reversed(orders):
            present = [row for row in rows if row.get(order.column) is not None]
            missing = [row for row in rows if row.get(order.column) is None]
            present.sort(
                key=lambda row: _sort_key(row.get(order.column)),
                reverse=not order.ascending,
            )
            rows = present + missing
        return rows

    async def select(
        self,
        table: str,
        filters: Sequence[Filter] = (),
        *,
        order: Order | Sequence[Order] | None = None,
        limit: int | None = None,
    ) -> List[Dict[str, Any]]:
        rows = [
            dict(row)
            for row in self.table(table).rows.values()
            if self._matches(row, filters)
        ]
        rows = self._sort(rows, as_orders(order))
        if limit is not None:
            rows = rows[:limit]
        return rows

    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        row = self._put(table, record)
        self._publish(ChangeEvent(table=table, event_type="INSERT", new=dict(row)))
        return row

    async def update(
        self, table: str, filters: Sequence[Filter], patch: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("Refusing to update without filters")
        target = self.table(table)
        updated: List[Dict[str, Any]] = []
        for row_id, row in list(target.rows.items()):
            if not self._matches(row, filters):
                continue
            candidate = {**row, "updated_at": _utc_now_iso(), **patch, "id": row_id}
            self._check_unique(target, candidate, ignore_id=row_id)
            target.rows[row_id] = candidate
            updated.append(dict(candidate))
            self._publish(
                ChangeEvent(table=table, event_type="UPDATE", new=dict(candidate), old=dict(row))
            )
        return updated

    async def upsert(
        self, table: str, record: Dict[str, Any], *, on_conflict: str
    ) -> Dict[str, Any]:
        existing = await self.select(table, [Filter(on_conflict, "eq", record.get(on_conflict))])
        if existing:
            rows = await self.update(
                table, [Filter("id", "eq", existing[0]["id"])], dict(record)
            )
            return rows[0]
        return await self.insert(table, record)

    async def delete(self, table: str, filters: Sequence[Filter]) -> List[Dict[str, Any]]:
        if not filters:
            raise ValueError("Refusing to delete without filters")
        target = self.table(table)
        removed: List[Dict[str, Any]] = []
        for row_id, row in list(target.rows.items()):
            if self._matches(row, filters):
                removed.append(target.rows.pop(row_id))
                self._publish(ChangeEvent(table=table, event_type="DELETE", old=dict(row)))
        return removed

    async def subscribe(
        self, table: str, event_types: Iterable[str] = ("INSERT",)
    ) -> AsyncIterator[ChangeEvent]:
        wanted: Set[str] = {event.upper() for event in event_types}
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers[table].append(queue)
        try:
            while True:
                event = await queue.get()
                if event.event_type in wanted or "*" in wanted:
                    yield event
        finally:
            self._subscribers[table].remove(queue)

    async def upload_file(
        self, bucket: str, key: str, data: bytes, *, content_type: str = "application/octet-stream"
    ) -> str:
        path = f"{bucket}/{key}"
        self.files[path] = bytes(data)
        return f"mock://storage/{path}"


def _sort_key(value: Any) -> Any:
    if isinstance(value, str):
        normalised = comparable(value)
        if isinstance(normalised, datetime):
            return (0, normalised.timestamp(), "")
        return (1, 0.0, value)
    if isinstance(value, bool):
        return (0, float(value), "")
    if isinstance(value, (int, float)):
        return (0, float(value), "")
    if isinstance(value, datetime):
        return (0, value.timestamp(), "")
    return (1, 0.0, str(value))


_mock_store: Optional[MockDataStore] = None


def get_mock_store() -> MockDataStore:
    global _mock_store
    if _mock_store is None:
        _mock_store = MockDataStore()
    return _mock_store


def reset_mock_store() -> None:
    global _mock_store
    _mock_store = None
