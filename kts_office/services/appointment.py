from __future__ import annotations

import logging
import secrets
import string
from datetime import date
from typing import Any, Dict, List, Optional

from kts_office.clients.query import Filter, Order
from kts_office.schemas.appointment import (
    Appointment,
    AppointmentListRequest,
    AppointmentListResponse,
    AppointmentStatus,
    DeletionOutcome,
    DeletionRequestRecord,
)
from kts_office.services.base import BackendService
from kts_office.services.exceptions import (
    InvalidTransitionError,
    PermissionDeniedError,
)
from kts_office.services.permissions import (
    AdminActor,
    PermissionFlag,
    can_perform,
    require,
    require_super_admin,
)

logger = logging.getLogger(__name__)

# Appointments in these states hold their slot.
ACTIVE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)

TRANSITIONS = {
    AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def new_reference_id(day: date) -> str:
    suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(4))
    return f"KTS-{day:%Y%m%d}-{suffix}"


def can_transition(current: AppointmentStatus | str, target: AppointmentStatus | str) -> bool:
    return AppointmentStatus(target) in TRANSITIONS[AppointmentStatus(current)]


def matches_search(row: Dict[str, Any], query: str, profile: Optional[Dict[str, Any]] = None) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    haystack = [row.get("reference_id"), row.get("guest_name"), row.get("guest_email")]
    if profile:
        haystack.extend([profile.get("full_name"), profile.get("email")])
    return any(needle in str(value).lower() for value in haystack if value)


class AppointmentService(BackendService):
    async def list(
        self, request: AppointmentListRequest, actor: AdminActor | None
    ) -> AppointmentListResponse:
        require(PermissionFlag.VIEW_APPOINTMENTS, actor)
        logger.info("Listing appointments status=%s search=%s", request.status, request.search)
        filters = []
        if request.status:
            filters.append(Filter("status", "eq", request.status.value))
        if request.user_id:
            filters.append(Filter("user_id", "eq", request.user_id))
        rows = await self._select(
            "appointments",
            filters,
            order=[Order("appointment_date", False), Order("appointment_time", False)],
        )
        if request.search:
            profiles = await self._profiles_for(rows)
            rows = [
                row for row in rows
                if matches_search(row, request.search, profiles.get(str(row.get("user_id"))))
            ]
        items = [Appointment(**row) for row in rows]
        return AppointmentListResponse(total=len(items), items=items)

    async def list_for_user(self, user_id: str) -> List[Appointment]:
        rows = await self._select(
            "appointments",
            [Filter("user_id", "eq", user_id)],
            order=Order("appointment_date", False),
        )
        return [Appointment(**row) for row in rows]

    async def _profiles_for(self, rows: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        user_ids = sorted({str(row["user_id"]) for row in rows if row.get("user_id")})
        if not user_ids:
            return {}
        profiles = await self._select("profiles", [Filter("user_id", "in", user_ids)])
        return {str(profile["user_id"]): profile for profile in profiles}

    async def get(self, appointment_id: str) -> Appointment:
        return Appointment(**await self._get("appointments", appointment_id, label="Appointment"))

    async def _transition(self, appointment_id: str, target: AppointmentStatus) -> Appointment:
        current = await self.get(appointment_id)
        if not can_transition(current.status, target):
            raise InvalidTransitionError(current.status.value, target.value)
        # Conditional on the status we read so two admins cannot both act on it.
        rows = await self._update(
            "appointments",
            [Filter("id", "eq", appointment_id), Filter("status", "eq", current.status.value)],
            {"status": target.value},
        )
        if not rows:
            latest = await self.get(appointment_id)
            raise InvalidTransitionError(latest.status.value, target.value)
        logger.info(
            "Appointment %s moved from %s to %s", appointment_id, current.status.value, target.value
        )
        return Appointment(**rows[0])

    async def update_status(
        self, appointment_id: str, target: AppointmentStatus, actor: AdminActor | None
    ) -> Appointment:
        require(PermissionFlag.CONFIRM_APPOINTMENTS, actor)
        return await self._transition(appointment_id, AppointmentStatus(target))

    async def cancel_own(self, appointment_id: str, user_id: str) -> Appointment:
        current = await self.get(appointment_id)
        if not user_id or current.user_id != user_id:
            logger.warning("User %s tried to cancel appointment %s", user_id, appointment_id)
            raise PermissionDeniedError("cancel_appointment")
        return await self._transition(appointment_id, AppointmentStatus.CANCELLED)

    async def delete(
        self, appointment_id: str, actor: AdminActor | None, *, reason: str = ""
    ) -> DeletionOutcome:
        """Delete outright when allowed, otherwise file a deletion request."""

        if actor is None or not actor.is_admin:
            raise PermissionDeniedError(PermissionFlag.DELETE_APPOINTMENTS.value)
        appointment = await self.get(appointment_id)
        if can_perform(PermissionFlag.DELETE_APPOINTMENTS, actor):
            await self._delete("appointments", [Filter("id", "eq", appointment_id)])
            logger.info("Appointment %s deleted by %s", appointment_id, actor.user_id)
            return DeletionOutcome(deleted=True, message="Appointment deleted")

        row = await self._insert(
            "deletion_requests",
            {
                "request_type": "appointment",
                "target_id": appointment_id,
                "requested_by": actor.user_id,
                "reason": reason,
                "status": "pending",
            },
        )
        label = appointment.reference_id or appointment_id[:8]
        await self._insert(
            "notifications",
            {
                "user_id": None,
                "title": "New Deletion Request",
                "message": f"Admin requested deletion of appointment {label}",
                "type": "warning",
                "is_read": False,
            },
        )
        logger.info("Deletion of appointment %s requested by %s", appointment_id, actor.user_id)
        return DeletionOutcome(
            deleted=False,
            request=DeletionRequestRecord(**row),
            message="Deletion request sent to Super Admin",
        )


class DeletionRequestService(BackendService):
    async def list(
        self, actor: AdminActor | None, *, status: Optional[str] = None
    ) -> List[DeletionRequestRecord]:
        require(PermissionFlag.VIEW_DELETION_REQUESTS, actor)
        filters = [Filter("status", "eq", status)] if status else []
        rows = await self._select(
            "deletion_requests", filters, order=Order("created_at", ascending=False)
        )
        return [DeletionRequestRecord(**row) for row in rows]

    async def _pending(self, request_id: str) -> Dict[str, Any]:
        row = await self._get("deletion_requests", request_id, label="Deletion request")
        if row.get("status") != "pending":
            raise InvalidTransitionError(str(row.get("status")), "reviewed")
        return row

    async def _review(self, row: Dict[str, Any], outcome: str, actor: AdminActor) -> DeletionRequestRecord:
        updated = await self._update(
            "deletion_requests",
            [Filter("id", "eq", row["id"]), Filter("status", "eq", "pending")],
            {
                "status": outcome,
                "reviewed_by": actor.user_id,
                "reviewed_at": self._now().isoformat(),
            },
        )
        if not updated:
            raise InvalidTransitionError("reviewed", outcome)
        await self._insert(
            "notifications",
            {
                "user_id": row.get("requested_by"),
                "title": f"Deletion Request {outcome.capitalize()}",
                "message": f"Your deletion request for {row.get('request_type')} has been {outcome}.",
                "type": "success" if outcome == "approved" else "warning",
                "is_read": False,
            },
        )
        logger.info("Deletion request %s %s by %s", row["id"], outcome, actor.user_id)
        return DeletionRequestRecord(**updated[0])

    async def approve(self, request_id: str, actor: AdminActor | None) -> DeletionRequestRecord:
        require_super_admin(actor, "approve_deletion_request")
        row = await self._pending(request_id)
        if row.get("request_type") == "appointment":
            removed = await self._delete("appointments", [Filter("id", "eq", row["target_id"])])
            if not removed:
                logger.warning("Appointment %s was already gone", row["target_id"])
        return await self._review(row, "approved", actor)

    async def reject(self, request_id: str, actor: AdminActor | None) -> DeletionRequestRecord:
        require_super_admin(actor, "reject_deletion_request")
        row = await self._pending(request_id)
        return await self._review(row, "rejected", actor)

