"""Chat-driven booking wizard.

``BookingWizard`` holds the per-session state and enforces the linear
``chat -> date -> time -> details -> confirm`` flow without touching the
backend. ``BookingService`` drives it, reading the catalog, validating
coupons and writing the appointment on submit.
"""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date, datetime
from threading import Lock
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

import dateparser

from kts_office.clients.query import Filter
from kts_office.config import get_settings
from kts_office.schemas.booking import BookingConfirmation, ContactDetails, WizardState, WizardView
from kts_office.schemas.coupon import Coupon
from kts_office.services.appointment import ACTIVE_STATUSES, new_reference_id
from kts_office.services.base import BackendService
from kts_office.services.catalog import CatalogService
from kts_office.services.coupons import CouponService, discounted_price
from kts_office.services.exceptions import (
    BookingValidationError,
    ConflictError,
    CouponRejectedError,
    InvalidTransitionError,
    NotFoundError,
    ServiceError,
)
from kts_office.services.settings import SLOT_SETTING_KEYS, SettingsService, slot_labels

logger = logging.getLogger(__name__)

QUICK_OPTIONS = ["Data Recovery", "Windows Upgrade", "Computer Repair", "Book Appointment"]

QUICK_REPLIES = {
    "data recovery": (
        "We offer professional data recovery from HDDs, SSDs, USB drives, and memory "
        "cards with 95%+ success rate. Starting from ₹999."
    ),
    "windows upgrade": (
        "Seamless Windows upgrades while keeping all your files and settings intact. "
        "Starting from ₹999."
    ),
    "computer repair": "Expert hardware and software repairs for all brands. Starting from ₹299.",
}

BOOKING_KEYWORDS = ("book", "appointment", "schedule")
CATALOG_KEYWORDS = ("service", "price", "offer")

REQUIRED_DETAILS = ("name", "email", "phone", "service_id")

_TIME_LABEL = re.compile(r"^(\d{1,2}):(\d{2})")


def classify_message(text: str) -> str:
    """Return ``"book"``, ``"catalog"`` or ``"contact"`` for free chat text."""

    lowered = text.lower()
    if any(keyword in lowered for keyword in BOOKING_KEYWORDS):
        return "book"
    if any(keyword in lowered for keyword in CATALOG_KEYWORDS):
        return "catalog"
    return "contact"


def normalise_time(label: str) -> str:
    match = _TIME_LABEL.match(label.strip())
    if not match:
        raise BookingValidationError(f"'{label}' is not a valid time slot", ["time"])
    return f"{int(match.group(1)):02d}:{match.group(2)}"


def is_bookable_day(day: date, today: date) -> bool:
    # Sunday is the only non-working day.
    return day >= today and day.weekday() != 6


def parse_booking_date(text: str, now: datetime, tz_name: str) -> date:
    """Accept an ISO date or natural text such as "next monday"."""

    cleaned = text.strip()
    try:
        return date.fromisoformat(cleaned)
    except ValueError:
        pass
    tz = ZoneInfo(tz_name)
    parsed = dateparser.parse(
        cleaned,
        settings={
            "TIMEZONE": tz_name,
            "TO_TIMEZONE": tz_name,
            "RETURN_AS_TIMEZONE_AWARE": True,
            "PREFER_DATES_FROM": "future",
            "RELATIVE_BASE": now.astimezone(tz).replace(tzinfo=None),
            "DATE_ORDER": "DMY",
        },
        languages=["en"],
    )
    if parsed is None:
        raise BookingValidationError(f"Could not understand the date '{text}'", ["date"])
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(tz)
    return parsed.date()


def format_price(amount: float | None) -> str:
    if amount is None:
        return "on request"
    if float(amount).is_integer():
        return f"₹{int(amount)}"
    return f"₹{amount:.2f}"


@dataclass
class BookingWizard:
    session_id: str
    state: WizardState = WizardState.CHAT
    selected_date: Optional[date] = None
    selected_time: Optional[str] = None
    details: ContactDetails = field(default_factory=ContactDetails)
    service_id: Optional[str] = None
    coupon: Optional[Coupon] = None
    user_id: Optional[str] = None

    def _expect(self, target: WizardState, *allowed: WizardState) -> None:
        if self.state not in allowed:
            raise InvalidTransitionError(self.state.value, target.value)

    def start(self) -> None:
        self._expect(WizardState.DATE, WizardState.CHAT)
        self.state = WizardState.DATE

    def choose_date(self, day: date, today: date) -> None:
        self._expect(WizardState.TIME, WizardState.DATE, WizardState.TIME)
        if not is_bookable_day(day, today):
            raise BookingValidationError(
                "Please choose a working day from today onwards (we are closed on Sundays)",
                ["date"],
            )
        self.selected_date = day
        self.selected_time = None
        self.state = WizardState.TIME

    def choose_time(self, label: str, available: List[str]) -> None:
        self._expect(WizardState.DETAILS, WizardState.TIME)
        slot = normalise_time(label)
        if slot not in available:
            raise BookingValidationError(f"The {slot} slot is not available", ["time"])
        self.selected_time = slot
        self.state = WizardState.DETAILS

    def update_details(
        self,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        service_id: Optional[str] = None,
    ) -> None:
        self._expect(WizardState.DETAILS, WizardState.DETAILS)
        if name is not None:
            self.details.name = name.strip()
        if email is not None:
            self.details.email = email.strip()
        if phone is not None:
            self.details.phone = phone.strip()
        if service_id is not None:
            self.service_id = service_id or None

    def apply_coupon(self, coupon: Optional[Coupon]) -> None:
        self._expect(WizardState.DETAILS, WizardState.DETAILS)
        self.coupon = coupon

    def change_time(self) -> None:
        self._expect(WizardState.DATE, WizardState.DETAILS)
        self.selected_time = None
        self.state = WizardState.DATE

    def missing_fields(self) -> List[str]:
        values = {
            "name": self.details.name,
            "email": self.details.email,
            "phone": self.details.phone,
            "service_id": self.service_id,
        }
        missing = [key for key in REQUIRED_DETAILS if not values[key]]
        if self.selected_date is None:
            missing.append("date")
        if self.selected_time is None:
            missing.append("time")
        return missing

    def begin_submit(self) -> None:
        self._expect(WizardState.CONFIRM, WizardState.DETAILS)
        missing = self.missing_fields()
        if missing:
            raise BookingValidationError(
                f"Please provide: {', '.join(missing)}", missing
            )
        self.state = WizardState.CONFIRM

    def abort_submit(self) -> None:
        if self.state == WizardState.CONFIRM:
            self.state = WizardState.DETAILS

    def reset(self) -> None:
        self.state = WizardState.CHAT
        self.selected_date = None
        self.selected_time = None
        self.details = ContactDetails()
        self.service_id = None
        self.coupon = None

    def cancel(self) -> None:
        if self.state == WizardState.CHAT:
            raise InvalidTransitionError(self.state.value, WizardState.CHAT.value)
        self.reset()


class WizardSessionStore:
    """Thread-safe store of wizard sessions; the oldest session is evicted first."""

    def __init__(self, max_sessions: int = 500) -> None:
        self._max_sessions = max_sessions
        self._sessions: "OrderedDict[str, BookingWizard]" = OrderedDict()
        self._lock = Lock()

    def get(self, session_id: str) -> BookingWizard:
        with self._lock:
            wizard = self._sessions.get(session_id)
            if wizard is None:
                wizard = BookingWizard(session_id=session_id)
                self._sessions[session_id] = wizard
                while len(self._sessions) > self._max_sessions:
                    evicted, _ = self._sessions.popitem(last=False)
                    logger.info("Evicted wizard session %s", evicted)
            else:
                self._sessions.move_to_end(session_id)
            return wizard

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


_wizard_sessions: Optional[WizardSessionStore] = None


def get_wizard_sessions() -> WizardSessionStore:
    global _wizard_sessions
    if _wizard_sessions is None:
        _wizard_sessions = WizardSessionStore(get_settings().wizard_max_sessions)
    return _wizard_sessions


def reset_wizard_sessions() -> None:
    global _wizard_sessions
    _wizard_sessions = None


class BookingService(BackendService):
    def __init__(self, *args, sessions: WizardSessionStore | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        shared = {"backend": self._backend, "settings": self._settings}
        self._sessions = sessions or get_wizard_sessions()
        self._site = SettingsService(self._client, **shared)
        self._catalog = CatalogService(self._client, **shared)
        self._coupons = CouponService(self._client, **shared)

    def _wizard(self, session_id: str, user_id: Optional[str]) -> BookingWizard:
        wizard = self._sessions.get(session_id)
        if user_id and not wizard.user_id:
            wizard.user_id = user_id
        return wizard

    def _view(self, wizard: BookingWizard, **extra) -> WizardView:
        return WizardView(
            session_id=wizard.session_id,
            state=wizard.state,
            selected_date=wizard.selected_date.isoformat() if wizard.selected_date else None,
            selected_time=wizard.selected_time,
            details=wizard.details.model_copy(),
            service_id=wizard.service_id,
            coupon_code=wizard.coupon.code if wizard.coupon else None,
            discount_percent=wizard.coupon.discount_percent if wizard.coupon else None,
            quick_options=list(QUICK_OPTIONS) if wizard.state == WizardState.CHAT else [],
            **extra,
        )

    async def view(self, session_id: str, user_id: Optional[str] = None) -> WizardView:
        wizard = self._wizard(session_id, user_id)
        extra: Dict[str, object] = {}
        if wizard.state == WizardState.TIME and wizard.selected_date:
            extra["available_slots"] = await self.available_slots(wizard.selected_date)
        if wizard.state == WizardState.DETAILS:
            extra["services"] = await self._catalog.list()
        return self._view(wizard, **extra)

    async def message(self, session_id: str, text: str, user_id: Optional[str] = None) -> WizardView:
        wizard = self._wizard(session_id, user_id)
        if wizard.state != WizardState.CHAT:
            raise InvalidTransitionError(wizard.state.value, WizardState.CHAT.value)
        text = text.strip()
        if not text:
            raise BookingValidationError("Message cannot be empty", ["text"])

        canned = QUICK_REPLIES.get(text.lower())
        if canned:
            return self._view(wizard, reply=canned)

        intent = classify_message(text)
        logger.info("Chat message for session %s classified as %s", session_id, intent)
        if intent == "book":
            wizard.start()
            return self._view(
                wizard, reply="I'd be happy to help you book an appointment! Please pick a date."
            )
        if intent == "catalog":
            services = await self._catalog.list()
            lines = [f"- {service.name}: {format_price(service.price)}" for service in services]
            reply = "Here are our services:\n" + "\n".join(lines)
            return self._view(wizard, reply=reply, services=services)

        company = await self._site.company_info()
        await self._insert(
            "contact_messages",
            {
                "name": wizard.details.name or "Chatbot visitor",
                "email": wizard.details.email or "",
                "phone": wizard.details.phone or None,
                "subject": "Chatbot message",
                "message": text,
                "source": "chatbot",
                "is_read": False,
            },
        )
        return self._view(
            wizard,
            reply=(
                "Thank you for your message! Our team will get back to you shortly. "
                f"For immediate assistance, please call us at {company.phone}."
            ),
        )

    async def booked_slots(self, day: date) -> List[str]:
        rows = await self._select(
            "appointments",
            [
                Filter("appointment_date", "eq", day.isoformat()),
                Filter("status", "in", list(ACTIVE_STATUSES)),
            ],
        )
        taken = []
        for row in rows:
            try:
                taken.append(normalise_time(str(row.get("appointment_time") or "")))
            except BookingValidationError:
                continue
        return taken

    async def slot_labels(self) -> List[str]:
        if await self._site.get_many(SLOT_SETTING_KEYS):
            return slot_labels(await self._site.slot_configuration())
        return [normalise_time(label) for label in self._settings.booking_slots]

    async def available_slots(self, day: date) -> List[str]:
        if not is_bookable_day(day, self._today()):
            return []
        taken = set(await self.booked_slots(day))
        return [label for label in await self.slot_labels() if label not in taken]

    async def slots_for(self, value: str) -> Tuple[date, List[str]]:
        day = parse_booking_date(value, self._now(), self._settings.timezone)
        return day, await self.available_slots(day)

    async def choose_date(self, session_id: str, value: str, user_id: Optional[str] = None) -> WizardView:
        wizard = self._wizard(session_id, user_id)
        day = parse_booking_date(value, self._now(), self._settings.timezone)
        wizard.choose_date(day, self._today())
        slots = await self.available_slots(day)
        reply = None
        if not slots:
            reply = "All slots are booked for this date. Please select another date."
        return self._view(wizard, available_slots=slots, reply=reply)

    async def choose_time(self, session_id: str, label: str, user_id: Optional[str] = None) -> WizardView:
        wizard = self._wizard(session_id, user_id)
        if wizard.state != WizardState.TIME or wizard.selected_date is None:
            raise InvalidTransitionError(wizard.state.value, WizardState.DETAILS.value)
        wizard.choose_time(label, await self.available_slots(wizard.selected_date))
        await self._prefill_from_profile(wizard)
        return self._view(wizard, services=await self._catalog.list())

    async def _prefill_from_profile(self, wizard: BookingWizard) -> None:
        if not wizard.user_id:
            return
        profiles = await self._select("profiles", [Filter("user_id", "eq", wizard.user_id)], limit=1)
        if not profiles:
            return
        profile = profiles[0]
        wizard.details.name = wizard.details.name or str(profile.get("full_name") or "")
        wizard.details.email = wizard.details.email or str(profile.get("email") or "")
        wizard.details.phone = wizard.details.phone or str(profile.get("phone") or "")

    async def update_details(
        self,
        session_id: str,
        *,
        name: Optional[str] = None,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        service_id: Optional[str] = None,
        coupon_code: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> WizardView:
        wizard = self._wizard(session_id, user_id)
        if wizard.state != WizardState.DETAILS:
            raise InvalidTransitionError(wizard.state.value, WizardState.DETAILS.value)
        if service_id:
            services = {service.id for service in await self._catalog.list()}
            if service_id not in services:
                raise BookingValidationError(f"Service {service_id} is not available", ["service_id"])

        coupon = wizard.coupon
        reply = None
        if coupon_code is not None:
            # Validation happens before any field is touched so a rejected
            # coupon leaves the wizard exactly as it was.
            coupon = await self._coupons.validate(coupon_code)
            if coupon:
                reply = f"{coupon.discount_percent}% discount applied."

        wizard.update_details(name=name, email=email, phone=phone, service_id=service_id)
        if coupon_code is not None:
            wizard.apply_coupon(coupon)
        return self._view(wizard, reply=reply, services=await self._catalog.list())

    async def change_time(self, session_id: str, user_id: Optional[str] = None) -> WizardView:
        wizard = self._wizard(session_id, user_id)
        wizard.change_time()
        return self._view(wizard)

    async def cancel(self, session_id: str, user_id: Optional[str] = None) -> WizardView:
        wizard = self._wizard(session_id, user_id)
        wizard.cancel()
        logger.info("Booking wizard %s cancelled", session_id)
        return self._view(wizard)

    async def submit(self, session_id: str, user_id: Optional[str] = None) -> WizardView:
        wizard = self._wizard(session_id, user_id)
        if wizard.state == WizardState.DETAILS:
            await self._prefill_from_profile(wizard)
        wizard.begin_submit()
        try:
            confirmation = await self._create_appointment(wizard)
        except Exception:
            wizard.abort_submit()
            raise
        wizard.reset()
        return self._view(wizard, reply=confirmation.summary, confirmation=confirmation)

    async def _create_appointment(self, wizard: BookingWizard) -> BookingConfirmation:
        try:
            service = await self._catalog.get(wizard.service_id or "")
        except NotFoundError as exc:
            raise BookingValidationError("Please choose a service", ["service_id"]) from exc

        discount = wizard.coupon.discount_percent if wizard.coupon else None
        final_price = discounted_price(service.price, discount)
        record = {
            "user_id": wizard.user_id,
            "service_id": service.id,
            "appointment_date": wizard.selected_date.isoformat(),
            "appointment_time": f"{wizard.selected_time}:00",
            "status": "pending",
            "coupon_code": wizard.coupon.code if wizard.coupon else None,
            "discount_percent": discount,
            "final_price": final_price,
            "notes": None,
        }
        if not wizard.user_id:
            record.update(
                {
                    "guest_name": wizard.details.name,
                    "guest_email": wizard.details.email,
                    "guest_phone": wizard.details.phone,
                }
            )

        row = await self._insert_with_reference(record)
        logger.info("Booked appointment %s for %s", row.get("reference_id"), wizard.selected_date)

        if wizard.coupon:
            try:
                await self._coupons.redeem(wizard.coupon.id)
            except ServiceError as exc:
                logger.warning(
                    "Redeeming coupon %s failed while booking %s; withdrawing the appointment",
                    wizard.coupon.code,
                    row["id"],
                )
                await self._delete("appointments", [Filter("id", "eq", row["id"])])
                if isinstance(exc, CouponRejectedError):
                    wizard.coupon = None
                raise

        summary = (
            f"Booking received! Reference: {row.get('reference_id')}\n"
            f"Service: {service.name}\n"
            f"Date: {wizard.selected_date.strftime('%d %b %Y')}\n"
            f"Time: {wizard.selected_time}\n"
            f"Price: {format_price(final_price)}"
        )
        if discount:
            summary += f" ({discount}% off with {wizard.coupon.code})"
        return BookingConfirmation(
            appointment_id=row["id"],
            reference_id=row.get("reference_id"),
            service_name=service.name,
            date=wizard.selected_date.isoformat(),
            time=wizard.selected_time,
            price=service.price,
            final_price=final_price,
            discount_percent=discount,
            coupon_code=wizard.coupon.code if wizard.coupon else None,
            summary=summary,
        )

    async def _insert_with_reference(self, record: Dict[str, object]) -> Dict[str, object]:
        attempts = self._settings.invoice_number_attempts
        for attempt in range(1, attempts + 1):
            candidate = {**record, "reference_id": new_reference_id(self._today())}
            try:
                return await self._insert("appointments", candidate)
            except ConflictError:
                logger.warning("Reference id collision, attempt %s/%s", attempt, attempts)
        raise ConflictError("Could not allocate a unique appointment reference")
