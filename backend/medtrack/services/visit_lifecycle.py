"""Module: visit_lifecycle.

State machine for a rep's on-site doctor visit::

    (none) --start--> IN_PROGRESS --end--> COMPLETED
                          |
                          +--cancel (admin)--> CANCELLED

At most one visit per user is IN_PROGRESS. The pre-check in ``start_visit``
only fails fast; the backend's unique-active-visit check is the guard. It
answers a lost race with 409, or with 400 "already has an active visit";
either way the caller gets ``ActiveVisitExists``, never a retry.

Notes policy on end: end-notes are appended to the existing notes on a new
line; blank end-notes leave the notes untouched; with no prior notes the
end-notes become the notes. ``PUT /visits/{id}/end`` applies the append
itself, so only the stripped end-notes are sent; ``merge_notes`` is the
expected result and is checked against what comes back. Cancel goes through
``PUT /visits/{id}``, which stores notes verbatim, so it sends the merge.
"""

import logging
from datetime import UTC, date, datetime
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from medtrack.core.errors import (
    ActiveVisitExists,
    ApiConflict,
    Forbidden,
    NetworkError,
    ValidationError,
    VisitNotActive,
)
from medtrack.schemas.visit import Visit, VisitEditPayload, VisitStatus
from medtrack.services.backend_client import MedTrackClient
from medtrack.services.entities import VisitApi
from medtrack.services.session_authority import Identity, SessionAuthority

logger = logging.getLogger(__name__)

NOTES_SEPARATOR = "\n"
REFERENCE_FIELDS = {"userId", "user_id", "doctorId", "doctor_id", "locationId", "location_id"}

# Backend 400 messages that are lifecycle conflicts, not bad input.
ACTIVE_VISIT_REJECTION = "already has an active visit"
NOT_IN_PROGRESS_REJECTION = "not in progress"


def _is_rejection(exc: ValidationError, marker: str) -> bool:
    return marker in exc.message.lower()


def merge_notes(existing: Optional[str], end_notes: Optional[str]) -> Optional[str]:
    addition = (end_notes or "").strip()
    if not addition:
        return existing
    if existing and existing.strip():
        return f"{existing.rstrip()}{NOTES_SEPARATOR}{addition}"
    return addition


def _positive_id(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ValidationError(f"Invalid {field_name}")
    try:
        parsed = int(value)
    except ValueError:
        raise ValidationError(f"Invalid {field_name}")
    if parsed <= 0:
        raise ValidationError(f"Invalid {field_name}")
    return parsed


def _now_like(reference: Optional[datetime]) -> datetime:
    """Current time in the same naive/aware flavour as ``reference``, never before it."""
    if reference is not None and reference.tzinfo is None:
        now = datetime.now()
    else:
        now = datetime.now(UTC)
    if reference is not None and now < reference:
        return reference
    return now


def _conflict_visit_id(body: dict) -> Optional[int]:
    for key in ("visit_id", "visitId", "activeVisitId", "id"):
        value = body.get(key)
        if value is not None:
            try:
                return int(value)
            except (TypeError, ValueError):
                return None
    return None


class VisitLifecycleManager:
    def __init__(self, backend: MedTrackClient, authority: SessionAuthority):
        self.visits = VisitApi(backend)
        self.authority = authority

    @staticmethod
    def _parse(data: Any) -> Visit:
        try:
            return Visit.model_validate(data)
        except PydanticValidationError as exc:
            logger.error("Malformed visit payload from backend: %s", exc)
            raise NetworkError("Unexpected visit payload from MedTrack backend")

    def _check_owner(self, identity: Identity, owner_id: int, verb: str) -> None:
        if owner_id != identity.user_id and not self.authority.authorize(identity, "visit", "manage_any"):
            raise Forbidden(f"You can only {verb} your own visits")

    async def _fetch(self, visit_id: int) -> Visit:
        return self._parse(await self.visits.get(visit_id))

    async def get_active_visit(self, user_id: int) -> Optional[Visit]:
        user_id = _positive_id(user_id, "user id")
        data = await self.visits.active_for_user(user_id) or []
        if isinstance(data, dict):
            data = [data]
        active = [v for v in (self._parse(item) for item in data) if v.is_active]
        if not active:
            return None
        if len(active) > 1:
            logger.error("Backend reports %d active visits for user %s", len(active), user_id)
        return max(active, key=lambda v: v.id)

    async def get_visit(self, identity: Identity, visit_id: int) -> Visit:
        self.authority.require(identity, "visit", "read")
        return await self._fetch(_positive_id(visit_id, "visit id"))

    async def list_visits(
        self,
        identity: Identity,
        user_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        location_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[Visit]:
        self.authority.require(identity, "visit", "list")
        if (start_date is None) != (end_date is None):
            raise ValidationError("Both start date and end date are required for a date range")
        if start_date and end_date and start_date > end_date:
            raise ValidationError("Start date cannot be after end date")

        if start_date and end_date:
            if user_id is not None:
                data = await self.visits.by_user_and_date_range(user_id, start_date, end_date)
            else:
                data = await self.visits.by_date_range(start_date, end_date)
        elif user_id is not None:
            data = await self.visits.by_user(user_id)
        elif doctor_id is not None:
            data = await self.visits.by_doctor(doctor_id)
        elif location_id is not None:
            data = await self.visits.by_location(location_id)
        else:
            data = await self.visits.list()

        visits = [self._parse(item) for item in data or []]
        # Backend endpoints filter on one criterion; apply the rest here.
        return [
            v
            for v in visits
            if (user_id is None or v.user_id == user_id)
            and (doctor_id is None or v.doctor_id == doctor_id)
            and (location_id is None or v.location_id == location_id)
        ]

    async def start_visit(
        self,
        identity: Identity,
        user_id: int,
        doctor_id: int,
        location_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Visit:
        self.authority.require(identity, "visit", "start")
        user_id = _positive_id(user_id, "user id")
        doctor_id = _positive_id(doctor_id, "doctor id")
        if location_id is not None:
            location_id = _positive_id(location_id, "location id")
        self._check_owner(identity, user_id, "start")

        active = await self.get_active_visit(user_id)
        if active is not None:
            logger.info("User %s already has active visit %s", user_id, active.id)
            raise ActiveVisitExists(active.id)

        payload = {
            "userId": user_id,
            "doctorId": doctor_id,
            "locationId": location_id,
            "notes": (notes or "").strip() or None,
        }
        try:
            data = await self.visits.start(payload)
        except ApiConflict as exc:
            raise await self._lost_start_race(user_id, _conflict_visit_id(exc.body))
        except ValidationError as exc:
            if not _is_rejection(exc, ACTIVE_VISIT_REJECTION):
                raise
            raise await self._lost_start_race(user_id, None)

        visit = self._parse(data)
        logger.info("Visit %s started by user %s with doctor %s", visit.id, user_id, doctor_id)
        return visit

    async def end_visit(self, identity: Identity, visit_id: int, notes: Optional[str] = None) -> Visit:
        self.authority.require(identity, "visit", "end")
        visit = await self._fetch(_positive_id(visit_id, "visit id"))
        self._check_owner(identity, visit.user_id, "end")
        if not visit.is_active:
            raise VisitNotActive(visit.id, visit.status.value)

        end_notes = (notes or "").strip() or None
        try:
            data = await self.visits.end(visit.id, end_notes)
        except ApiConflict:
            raise await self._lost_end_race(visit.id)
        except ValidationError as exc:
            if not _is_rejection(exc, NOT_IN_PROGRESS_REJECTION):
                raise
            raise await self._lost_end_race(visit.id)

        ended = self._parse(data)
        expected = merge_notes(visit.notes, end_notes)
        if ended.notes != expected:
            logger.warning("Visit %s notes after end differ from the expected merge", ended.id)
        logger.info("Visit %s completed by user %s", ended.id, identity.user_id)
        return ended

    async def _lost_start_race(self, user_id: int, visit_id: Optional[int]) -> ActiveVisitExists:
        if visit_id is None:
            existing = await self.get_active_visit(user_id)
            visit_id = existing.id if existing else None
        logger.info("Backend refused concurrent start for user %s (active visit %s)", user_id, visit_id)
        return ActiveVisitExists(visit_id)

    async def _lost_end_race(self, visit_id: int) -> VisitNotActive:
        current = await self._fetch(visit_id)
        logger.info("Visit %s was closed concurrently (now %s)", visit_id, current.status.value)
        return VisitNotActive(visit_id, current.status.value)

    async def cancel_visit(self, identity: Identity, visit_id: int, reason: Optional[str] = None) -> Visit:
        self.authority.require(identity, "visit", "cancel")
        visit = await self._fetch(_positive_id(visit_id, "visit id"))
        if not visit.is_active:
            raise VisitNotActive(visit.id, visit.status.value)

        reason = (reason or "").strip()
        payload = {
            "status": VisitStatus.CANCELLED.value,
            "checkOutTime": _now_like(visit.check_in_time).isoformat(),
            "notes": merge_notes(visit.notes, f"Cancelled: {reason}" if reason else None),
        }
        cancelled = self._parse(await self.visits.update(visit.id, payload))
        logger.info("Visit %s cancelled by admin %s", cancelled.id, identity.user_id)
        return cancelled

    async def edit_visit(self, identity: Identity, visit_id: int, fields: dict[str, Any]) -> Visit:
        """Administrative correction of a visit's metadata, outside the state machine."""
        self.authority.require(identity, "visit", "edit")
        fields = dict(fields or {})
        touched_refs = REFERENCE_FIELDS.intersection(fields)
        if touched_refs:
            raise ValidationError("Visit doctor, location and user cannot be changed")
        try:
            changes = VisitEditPayload.model_validate(fields)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid visit fields: {exc.errors()[0].get('msg', 'invalid')}")
        payload = changes.model_dump(by_alias=True, exclude_unset=True, mode="json")
        if not payload:
            raise ValidationError("No editable fields supplied")

        visit = await self._fetch(_positive_id(visit_id, "visit id"))
        if changes.status == VisitStatus.IN_PROGRESS and not visit.is_active:
            active = await self.get_active_visit(visit.user_id)
            if active is not None and active.id != visit.id:
                raise ActiveVisitExists(active.id)

        try:
            data = await self.visits.update(visit.id, payload)
        except ApiConflict as exc:
            raise ActiveVisitExists(_conflict_visit_id(exc.body))

        edited = self._parse(data)
        logger.info("Visit %s edited by user %s: %s", edited.id, identity.user_id, sorted(payload))
        return edited

    async def delete_visit(self, identity: Identity, visit_id: int) -> None:
        self.authority.require(identity, "visit", "delete")
        visit_id = _positive_id(visit_id, "visit id")
        await self.visits.delete(visit_id)
        logger.info("Visit %s deleted by admin %s", visit_id, identity.user_id)
