"""
Reservation store: the only writer of bookings, holds and imported reservations.

Every write that could break the no-overlap guarantee runs as one database
transaction while holding the property's in-process lock, and the transaction
also takes a row lock on the property (PostgreSQL). The overlap check and the
insert can therefore never interleave with another writer for the same
property. Conflicts are returned as ReservationConflict values, not raised.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Union
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from booking_engine.config import DEFAULT_CURRENCY
from booking_engine.db.locks import KeyedLockRegistry, property_locks
from booking_engine.db.readers.availability import collect_blocking_ranges
from booking_engine.db.readers.bookings import get_booking, get_booking_by_idempotency_key
from booking_engine.db.readers.calendars import get_calendar, get_external_reservations
from booking_engine.db.readers.holds import find_active_hold
from booking_engine.db.readers.properties import lock_property
from booking_engine.db.writers.bookings import (
    increment_coupon_usage,
    insert_booking,
    insert_guests,
    update_booking_status,
)
from booking_engine.db.writers.external_reservations import (
    delete_external_reservation,
    delete_external_reservations,
    insert_external_reservations,
    update_external_reservation,
)
from booking_engine.db.writers.holds import delete_holds_for_reference, insert_hold
from booking_engine.errors import InvalidBookingTransitionError, NotFoundError
from booking_engine.intervals import BlockingRange, DateRange
from booking_engine.metrics import booking_transitions, reserve_attempts
from booking_engine.models.bookings import Booking
from booking_engine.models.enums import (
    SLOT_HOLDING_STATUSES,
    BlockSource,
    BookingStatus,
    HoldReason,
    ReservationKind,
)
from booking_engine.models.holds import Hold
from booking_engine.normalizers.ical import ExternalEvent
from booking_engine.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Reservation:
    """A booking or hold that now occupies (or, for pending bookings, requested) a stay."""

    kind: ReservationKind
    id: UUID
    property_id: UUID
    stay: DateRange
    record: dict[str, Any] = field(compare=False)
    replayed: bool = False


@dataclass(frozen=True)
class ReservationConflict:
    """The stay overlaps the listed ranges; nothing was written."""

    stay: DateRange
    blocking_ranges: list[BlockingRange]


ReserveResult = Union[Reservation, ReservationConflict]


@dataclass
class SyncDelta:
    imported: int = 0
    updated: int = 0
    deleted: int = 0
    skipped: int = 0


def _reservation(kind: ReservationKind, row: Any, replayed: bool = False) -> Reservation:
    record = dict(row._mapping)
    return Reservation(
        kind=kind,
        id=record["id"],
        property_id=record["property_id"],
        stay=DateRange(record["start_date"], record["end_date"]),
        record=record,
        replayed=replayed,
    )


def _event_changed(row: Any, event: ExternalEvent) -> bool:
    return (
        row.start_date != event.start
        or row.end_date != event.end
        or row.status != event.status.value
        or bool(row.is_blocking) != event.is_blocking
        or row.title != event.title
        or row.description != event.description
    )


def _row_holds_slot(row: Any) -> bool:
    return bool(row.is_blocking) and row.status in SLOT_HOLDING_STATUSES


class ReservationStore:
    """
    Atomic check-and-insert over bookings, holds and external reservations.

    Args:
        engine: SQLAlchemy engine
        locks: Per-property lock registry; the process-wide registry by default
    """

    def __init__(self, engine: Engine, locks: KeyedLockRegistry = property_locks):
        self.engine = engine
        self.locks = locks

    # ------------------------------------------------------------------
    # Bookings and holds
    # ------------------------------------------------------------------

    def try_reserve(
        self,
        property_id: UUID,
        stay: DateRange,
        kind: ReservationKind,
        idempotency_key: Optional[str] = None,
        values: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> ReserveResult:
        """
        Reserve ``stay`` unless something already blocks it.

        For bookings the idempotency key is the booking's key and the caller's
        own checkout hold (reference_id == key) does not count as a conflict.
        For holds the key is the hold's reference_id; retrying the same
        reference for the same dates returns the existing hold, and new dates
        replace the reference's earlier hold instead of conflicting with it.

        Args:
            property_id: Property to reserve
            stay: Half-open stay range
            kind: booking (created pending) or hold
            idempotency_key: Replay key, see above
            values: Extra columns. Bookings: guests, subtotal, taxes, fees,
                discount, total, currency, coupon_code, guest_info (list of
                guest dicts). Holds: reason, expires_at.
            now: Reference time for hold expiry

        Returns:
            Reservation (replayed=True for an idempotent retry) or ReservationConflict

        Raises:
            NotFoundError: The property does not exist
        """
        now = now or utc_now()
        values = dict(values or {})
        log = logger.bind(property_id=str(property_id), kind=kind.value, stay=stay.as_dict())

        with self.locks.hold(property_id):
            try:
                with self.engine.begin() as conn:
                    if not lock_property(conn, property_id):
                        raise NotFoundError(f"Property {property_id} not found")

                    if idempotency_key:
                        existing = self._find_existing(
                            conn, kind, property_id, stay, idempotency_key, now
                        )
                        if existing is not None:
                            reserve_attempts.labels(kind=kind.value, result="replayed").inc()
                            log.info("reservation_replayed", reservation_id=str(existing.id))
                            return existing

                    blocking = collect_blocking_ranges(
                        conn,
                        property_id,
                        stay,
                        now,
                        ignore_hold_reference=idempotency_key,
                    )
                    if blocking:
                        reserve_attempts.labels(kind=kind.value, result="conflict").inc()
                        log.info("reservation_conflict", blocking=len(blocking))
                        return ReservationConflict(stay=stay, blocking_ranges=blocking)

                    if kind == ReservationKind.BOOKING:
                        reservation = self._insert_booking(
                            conn, property_id, stay, idempotency_key, values, now
                        )
                    else:
                        reservation = self._insert_hold(
                            conn, property_id, stay, idempotency_key, values, now
                        )

            except IntegrityError:
                # Another process won the race: same idempotency key (unique
                # constraint) or an overlapping row (PostgreSQL exclusion constraint)
                resolved = self._resolve_integrity_race(
                    kind, property_id, stay, idempotency_key, now, log
                )
                if resolved is None:
                    raise
                return resolved

        reserve_attempts.labels(kind=kind.value, result="created").inc()
        log.info("reservation_created", reservation_id=str(reservation.id))
        return reservation

    def _resolve_integrity_race(
        self,
        kind: ReservationKind,
        property_id: UUID,
        stay: DateRange,
        idempotency_key: Optional[str],
        now: datetime,
        log: Any,
    ) -> Optional[ReserveResult]:
        with self.engine.connect() as conn:
            if idempotency_key:
                existing = self._find_existing(conn, kind, property_id, stay, idempotency_key, now)
                if existing is not None:
                    reserve_attempts.labels(kind=kind.value, result="replayed").inc()
                    log.info("reservation_replayed_after_race", reservation_id=str(existing.id))
                    return existing

            blocking = collect_blocking_ranges(
                conn,
                property_id,
                stay,
                now,
                ignore_hold_reference=idempotency_key,
            )

        if not blocking:
            return None

        reserve_attempts.labels(kind=kind.value, result="conflict").inc()
        log.info("reservation_conflict_after_race", blocking=len(blocking))
        return ReservationConflict(stay=stay, blocking_ranges=blocking)

    def _find_existing(
        self,
        conn: Connection,
        kind: ReservationKind,
        property_id: UUID,
        stay: DateRange,
        idempotency_key: str,
        now: datetime,
    ) -> Optional[Reservation]:
        if kind == ReservationKind.BOOKING:
            row = get_booking_by_idempotency_key(conn, idempotency_key)
        else:
            row = find_active_hold(conn, property_id, idempotency_key, stay.start, stay.end, now)
        return _reservation(kind, row, replayed=True) if row is not None else None

    def _insert_booking(
        self,
        conn: Connection,
        property_id: UUID,
        stay: DateRange,
        idempotency_key: Optional[str],
        values: dict[str, Any],
        now: datetime,
    ) -> Reservation:
        booking_id = uuid.uuid4()
        guest_info = values.pop("guest_info", None) or []
        insert_booking(
            conn,
            {
                "id": booking_id,
                "property_id": property_id,
                "status": BookingStatus.PENDING.value,
                "start_date": stay.start,
                "end_date": stay.end,
                "nights": stay.nights,
                "guests": values.get("guests", 1),
                "subtotal": values.get("subtotal", 0),
                "taxes": values.get("taxes", 0),
                "fees": values.get("fees", 0),
                "discount": values.get("discount", 0),
                "total": values.get("total", 0),
                "currency": values.get("currency", DEFAULT_CURRENCY),
                "coupon_code": values.get("coupon_code"),
                "idempotency_key": idempotency_key,
                "created_at": now,
                "updated_at": now,
            },
        )
        insert_guests(conn, booking_id, guest_info, now)
        row = conn.execute(select(Booking).where(Booking.id == booking_id)).one()
        return _reservation(ReservationKind.BOOKING, row)

    def _insert_hold(
        self,
        conn: Connection,
        property_id: UUID,
        stay: DateRange,
        reference_id: Optional[str],
        values: dict[str, Any],
        now: datetime,
    ) -> Reservation:
        hold_id = uuid.uuid4()
        reason = values.get("reason", HoldReason.CHECKOUT)
        if reference_id:
            replaced = delete_holds_for_reference(conn, property_id, reference_id)
            if replaced:
                logger.info("hold_replaced", reference_id=reference_id, replaced=replaced)
        insert_hold(
            conn,
            {
                "id": hold_id,
                "property_id": property_id,
                "start_date": stay.start,
                "end_date": stay.end,
                "reason": HoldReason(reason).value,
                "reference_id": reference_id,
                "expires_at": values["expires_at"],
                "created_at": now,
            },
        )
        row = conn.execute(select(Hold).where(Hold.id == hold_id)).one()
        return _reservation(ReservationKind.HOLD, row)

    # ------------------------------------------------------------------
    # Booking lifecycle
    # ------------------------------------------------------------------

    def _booking_property(self, booking_id: UUID) -> UUID:
        with self.engine.connect() as conn:
            row = get_booking(conn, booking_id)
        if row is None:
            raise NotFoundError(f"Booking {booking_id} not found")
        return row.property_id

    def confirm_booking(
        self,
        booking_id: UUID,
        payment_intent_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReserveResult:
        """
        Mark a pending booking confirmed after payment succeeded.

        In one transaction under the property lock: re-check the stay against
        other confirmed bookings, blocking external reservations and
        blackouts (holds never block a paid booking), flip the status,
        release the checkout holds carrying the booking's idempotency key,
        and count the coupon use. Confirming twice is a no-op.

        Returns:
            Reservation, or ReservationConflict if the dates were taken meanwhile

        Raises:
            NotFoundError: Unknown booking
            InvalidBookingTransitionError: The booking was canceled
        """
        now = now or utc_now()
        property_id = self._booking_property(booking_id)

        with self.locks.hold(property_id):
            with self.engine.begin() as conn:
                lock_property(conn, property_id)
                booking = get_booking(conn, booking_id, for_update=True)
                if booking is None:
                    raise NotFoundError(f"Booking {booking_id} not found")

                if booking.status == BookingStatus.CONFIRMED.value:
                    logger.info("booking_already_confirmed", booking_id=str(booking_id))
                    return _reservation(ReservationKind.BOOKING, booking, replayed=True)

                if booking.status == BookingStatus.CANCELED.value:
                    raise InvalidBookingTransitionError(
                        f"Booking {booking_id} is canceled and cannot be confirmed"
                    )

                stay = DateRange(booking.start_date, booking.end_date)
                blocking = collect_blocking_ranges(
                    conn, property_id, stay, now, include_holds=False
                )
                if blocking:
                    logger.warning(
                        "booking_confirm_conflict",
                        booking_id=str(booking_id),
                        blocking=[r.as_dict() for r in blocking],
                    )
                    return ReservationConflict(stay=stay, blocking_ranges=blocking)

                update_booking_status(
                    conn, booking_id, BookingStatus.CONFIRMED.value, now, payment_intent_id
                )
                released = 0
                if booking.idempotency_key:
                    released = delete_holds_for_reference(
                        conn, property_id, booking.idempotency_key
                    )
                if booking.coupon_code:
                    increment_coupon_usage(conn, booking.coupon_code)

                confirmed = get_booking(conn, booking_id)

        booking_transitions.labels(status=BookingStatus.CONFIRMED.value).inc()
        logger.info("booking_confirmed", booking_id=str(booking_id), holds_released=released)
        return _reservation(ReservationKind.BOOKING, confirmed)

    def cancel_booking(self, booking_id: UUID, now: Optional[datetime] = None) -> Reservation:
        """
        Cancel a booking. Its dates become available immediately. Idempotent.

        Raises:
            NotFoundError: Unknown booking
        """
        now = now or utc_now()
        property_id = self._booking_property(booking_id)

        with self.locks.hold(property_id):
            with self.engine.begin() as conn:
                booking = get_booking(conn, booking_id, for_update=True)
                if booking is None:
                    raise NotFoundError(f"Booking {booking_id} not found")
                if booking.status == BookingStatus.CANCELED.value:
                    return _reservation(ReservationKind.BOOKING, booking, replayed=True)

                update_booking_status(conn, booking_id, BookingStatus.CANCELED.value, now)
                canceled = get_booking(conn, booking_id)

        booking_transitions.labels(status=BookingStatus.CANCELED.value).inc()
        logger.info("booking_canceled", booking_id=str(booking_id))
        return _reservation(ReservationKind.BOOKING, canceled)

    # ------------------------------------------------------------------
    # External calendar diff-apply
    # ------------------------------------------------------------------

    def apply_external_changes(
        self,
        calendar: Any,
        events: list[ExternalEvent],
        dry_run: bool = False,
        now: Optional[datetime] = None,
    ) -> SyncDelta:
        """
        Reconcile one calendar's stored reservations with its latest feed.

        Inserts new UIDs, updates changed ones and deletes UIDs missing from
        the feed. A slot-holding event that would overlap another one of the
        same calendar is skipped (an existing row keeps its last version).
        Overlap with a confirmed direct booking is logged but written: the
        platform is authoritative for its own reservations.

        Args:
            calendar: ExternalCalendar row
            events: Normalized events, unique by UID
            dry_run: Compute and log the delta without writing
            now: Timestamp for written rows

        Returns:
            SyncDelta: Counts of imported, updated, deleted and skipped rows
        """
        now = now or utc_now()
        delta = SyncDelta()
        log = logger.bind(calendar_id=str(calendar.id), property_id=str(calendar.property_id))

        with self.locks.hold(calendar.property_id):
            with self.engine.begin() as conn:
                lock_property(conn, calendar.property_id)
                stored = {
                    row.external_uid: row for row in get_external_reservations(conn, calendar.id)
                }
                incoming_uids = {event.external_uid for event in events}
                missing = sorted(uid for uid in stored if uid not in incoming_uids)

                # Every stored row the feed still lists keeps its slot until
                # its new version is accepted; accepting one move can free the
                # slot another move needs, so passes repeat until none fits
                occupied: dict[str, DateRange] = {
                    uid: DateRange(row.start_date, row.end_date)
                    for uid, row in stored.items()
                    if uid in incoming_uids and _row_holds_slot(row)
                }
                pending = sorted(
                    (
                        event
                        for event in events
                        if event.external_uid not in stored
                        or _event_changed(stored[event.external_uid], event)
                    ),
                    key=lambda e: (e.start, e.end, e.external_uid),
                )
                accepted: list[ExternalEvent] = []
                progress = True
                while pending and progress:
                    progress = False
                    remaining: list[ExternalEvent] = []
                    for event in pending:
                        uid = event.external_uid
                        if event.holds_slot:
                            stay = DateRange(event.start, event.end)
                            if any(
                                other.overlaps(stay)
                                for other_uid, other in occupied.items()
                                if other_uid != uid
                            ):
                                remaining.append(event)
                                continue
                            occupied[uid] = stay
                        else:
                            occupied.pop(uid, None)
                        accepted.append(event)
                        progress = True
                    pending = remaining

                for event in pending:
                    stay = DateRange(event.start, event.end)
                    delta.skipped += 1
                    log.warning(
                        "external_reservation_overlap_skipped",
                        uid=event.external_uid,
                        stay=stay.as_dict(),
                        overlaps=sorted(
                            other_uid
                            for other_uid, other in occupied.items()
                            if other_uid != event.external_uid and other.overlaps(stay)
                        ),
                    )

                to_insert: list[ExternalEvent] = []
                to_update: list[ExternalEvent] = []
                for event in accepted:
                    if event.holds_slot:
                        self._warn_on_booking_overlap(conn, calendar, event, now, log)
                    if event.external_uid in stored:
                        to_update.append(event)
                    else:
                        to_insert.append(event)

                delta.imported = len(to_insert)
                delta.updated = len(to_update)
                delta.deleted = len(missing)

                if dry_run:
                    log.info("external_changes_dry_run", **vars(delta))
                    return delta

                delete_external_reservations(conn, calendar.id, missing)
                for event in to_update:
                    update_external_reservation(conn, calendar.id, event, now)
                insert_external_reservations(conn, calendar.id, to_insert, now)

        log.info("external_changes_applied", **vars(delta))
        return delta

    def delete_external_reservation(self, calendar_id: UUID, reservation_id: UUID) -> bool:
        """
        Remove one imported reservation (admin cleanup).

        Runs under the calendar's property lock so it cannot interleave with
        a sync applying changes to the same calendar.

        Returns:
            bool: True if a row was removed

        Raises:
            NotFoundError: Unknown calendar
        """
        with self.engine.connect() as conn:
            calendar = get_calendar(conn, calendar_id)
        if calendar is None:
            raise NotFoundError(f"Calendar {calendar_id} not found")

        with self.locks.hold(calendar.property_id):
            with self.engine.begin() as conn:
                lock_property(conn, calendar.property_id)
                removed = delete_external_reservation(conn, calendar_id, reservation_id)

        logger.info(
            "external_reservation_deleted",
            calendar_id=str(calendar_id),
            reservation_id=str(reservation_id),
            removed=removed,
        )
        return removed

    def _warn_on_booking_overlap(
        self, conn: Connection, calendar: Any, event: ExternalEvent, now: datetime, log: Any
    ) -> None:
        blocking = collect_blocking_ranges(
            conn, calendar.property_id, DateRange(event.start, event.end), now, include_holds=False
        )
        bookings = [r.reference for r in blocking if r.source == BlockSource.BOOKING]
        if bookings:
            log.warning(
                "external_overlaps_booking",
                uid=event.external_uid,
                booking_ids=bookings,
            )
