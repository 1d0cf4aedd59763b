"""Invoice numbering, drafting and persistence.

Numbers follow the Indian fiscal year (April to March) and look like
``Inv-25-26/KTS-007``. Allocation reads the latest number for the current
fiscal prefix and relies on the unique ``invoice_number`` constraint; a
collision recomputes and retries a bounded number of times.
"""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

from kts_office.clients.query import Filter, Order
from kts_office.schemas.appointment import AppointmentStatus
from kts_office.schemas.billing import (
    Invoice,
    InvoiceDraft,
    InvoiceLineItem,
    InvoiceListResponse,
    InvoiceStatus,
)
from kts_office.services.base import BackendService
from kts_office.services.exceptions import ConflictError, InvalidTransitionError
from kts_office.services.permissions import AdminActor, PermissionFlag, require
from kts_office.services.settings import SettingsService

logger = logging.getLogger(__name__)

SERIAL_PATTERN = re.compile(r"-(\d{3})$")

INVOICEABLE_STATUSES = {AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED}

STATUS_TRANSITIONS = {
    InvoiceStatus.DRAFT: {InvoiceStatus.ISSUED, InvoiceStatus.CANCELLED},
    InvoiceStatus.ISSUED: {InvoiceStatus.PAID, InvoiceStatus.CANCELLED},
    InvoiceStatus.PAID: set(),
    InvoiceStatus.CANCELLED: set(),
}


def fiscal_prefix(today: date) -> str:
    start = today.year if today.month >= 4 else today.year - 1
    return f"Inv-{start % 100:02d}-{(start + 1) % 100:02d}/KTS"


def next_serial(latest_number: Optional[str]) -> int:
    if not latest_number:
        return 1
    match = SERIAL_PATTERN.search(latest_number)
    return int(match.group(1)) + 1 if match else 1


def format_invoice_number(prefix: str, serial: int) -> str:
    return f"{prefix}-{serial:03d}"


def compute_totals(
    items: Iterable[InvoiceLineItem], tax_rate: float, discount: float
) -> Tuple[List[InvoiceLineItem], float, float, float]:
    """Return line items with amounts filled in plus subtotal, tax and total."""

    priced = [
        item.model_copy(update={"amount": round(item.quantity * item.rate, 2)}) for item in items
    ]
    subtotal = round(sum(item.amount for item in priced), 2)
    tax_amount = round(subtotal * tax_rate / 100, 2)
    total = round(subtotal + tax_amount - discount, 2)
    return priced, subtotal, tax_amount, total


class InvoiceService(BackendService):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._site = SettingsService(self._client, backend=self._backend, settings=self._settings)

    async def next_invoice_number(
        self, today: date | None = None, *, after: Optional[str] = None
    ) -> str:
        """Next number for the fiscal year, always past ``after`` when given."""

        prefix = fiscal_prefix(today or self._today())
        rows = await self._select(
            "invoices",
            [Filter("invoice_number", "like", f"{prefix}%")],
            order=[Order("created_at", ascending=False), Order("invoice_number", ascending=False)],
            limit=1,
        )
        latest = rows[0].get("invoice_number") if rows else None
        serial = next_serial(latest)
        if after and after.startswith(prefix):
            serial = max(serial, next_serial(after))
        return format_invoice_number(prefix, serial)

    async def draft_from_appointment(
        self, appointment_id: str, actor: AdminActor | None
    ) -> InvoiceDraft:
        require(PermissionFlag.MANAGE_INVOICES, actor)
        appointment = await self._get("appointments", appointment_id, label="Appointment")
        status = AppointmentStatus(appointment.get("status", "pending"))
        if status not in INVOICEABLE_STATUSES:
            raise InvalidTransitionError(status.value, "invoiced")

        items: List[InvoiceLineItem] = []
        if appointment.get("service_id"):
            service = await self._get("services", appointment["service_id"], label="Service")
            price = float(service.get("price") or 0)
            items.append(InvoiceLineItem(description=service["name"], quantity=1, rate=price))

        customer = {
            "name": appointment.get("guest_name") or "",
            "email": appointment.get("guest_email") or "",
            "phone": appointment.get("guest_phone") or "",
            "address": "",
        }
        if appointment.get("user_id"):
            profiles = await self._select(
                "profiles", [Filter("user_id", "eq", appointment["user_id"])], limit=1
            )
            if profiles:
                profile = profiles[0]
                customer = {
                    "name": profile.get("full_name") or customer["name"],
                    "email": profile.get("email") or customer["email"],
                    "phone": profile.get("phone") or customer["phone"],
                    "address": profile.get("address") or "",
                }

        tax_rate = self._settings.invoice_tax_rate
        subtotal = sum(item.quantity * item.rate for item in items)
        discount = round(subtotal * (appointment.get("discount_percent") or 0) / 100, 2)
        priced, subtotal, tax_amount, total = compute_totals(items, tax_rate, discount)

        today = self._today()
        appointment_date = date.fromisoformat(str(appointment["appointment_date"])[:10])
        return InvoiceDraft(
            appointment_id=appointment_id,
            invoice_date=today.isoformat(),
            due_date=(today + timedelta(days=self._settings.invoice_due_days)).isoformat(),
            customer_name=customer["name"],
            customer_email=customer["email"],
            customer_phone=customer["phone"],
            customer_address=customer["address"],
            items=priced,
            subtotal=subtotal,
            tax_rate=tax_rate,
            tax_amount=tax_amount,
            discount=discount,
            total=total,
            notes=(
                f"Appointment Reference: {appointment.get('reference_id') or appointment_id}\n"
                f"Date: {appointment_date:%d %B %Y}\n"
                f"Time: {appointment.get('appointment_time')}"
            ),
            terms=f"Payment is due within {self._settings.invoice_due_days} days of invoice date.",
            company=await self._site.company_info(),
        )

    async def create_invoice(
        self,
        draft: InvoiceDraft,
        actor: AdminActor | None,
        *,
        status: InvoiceStatus = InvoiceStatus.ISSUED,
    ) -> Invoice:
        require(PermissionFlag.MANAGE_INVOICES, actor)
        priced, subtotal, tax_amount, total = compute_totals(
            draft.items, draft.tax_rate, draft.discount
        )
        payload = draft.model_dump(mode="json")
        payload.update(
            {
                "items": [item.model_dump() for item in priced],
                "subtotal": subtotal,
                "tax_amount": tax_amount,
                "total": total,
                "status": status.value,
                "created_by": actor.user_id if actor else None,
            }
        )
        if payload.get("company") is None:
            payload["company"] = (await self._site.company_info()).model_dump()

        attempts = self._settings.invoice_number_attempts
        number: Optional[str] = None
        for attempt in range(1, attempts + 1):
            number = await self.next_invoice_number(after=number)
            try:
                row = await self._insert("invoices", {**payload, "invoice_number": number})
            except ConflictError:
                logger.warning(
                    "Invoice number %s already taken, attempt %s/%s", number, attempt, attempts
                )
                continue
            logger.info("Created invoice %s for appointment %s", number, draft.appointment_id)
            return Invoice(**row)
        raise ConflictError("Could not allocate a unique invoice number")

    async def list(self, actor: AdminActor | None) -> InvoiceListResponse:
        require(PermissionFlag.VIEW_INVOICES, actor)
        rows = await self._select(
            "invoices",
            order=[Order("created_at", ascending=False), Order("invoice_number", ascending=False)],
        )
        items = [Invoice(**row) for row in rows]
        return InvoiceListResponse(total=len(items), items=items)

    async def get(self, invoice_id: str, actor: AdminActor | None) -> Invoice:
        require(PermissionFlag.VIEW_INVOICES, actor)
        return Invoice(**await self._get("invoices", invoice_id, label="Invoice"))

    async def update_status(
        self, invoice_id: str, target: InvoiceStatus, actor: AdminActor | None
    ) -> Invoice:
        require(PermissionFlag.MANAGE_INVOICES, actor)
        current = Invoice(**await self._get("invoices", invoice_id, label="Invoice"))
        if target not in STATUS_TRANSITIONS[current.status]:
            raise InvalidTransitionError(current.status.value, target.value)
        logger.info("Invoice %s moved to %s", current.invoice_number, target.value)
        return Invoice(**await self._update_one("invoices", invoice_id, {"status": target.value}))
