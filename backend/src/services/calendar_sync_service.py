"""
External calendar import, export and two-way sync for doctor availability.

Works inside the caller's transaction: the availability service opens one
unit of work per batch and hands in the session. Per-item failures are
recorded in the result details and never abort the batch; failing to list
the remote events at all does.
"""

import logging
from datetime import date
from typing import Dict, List, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.config import SchedulingConfig
from core.constants import CALENDAR_EVENT_DESCRIPTION, SLOT_STATUS_AVAILABLE
from core.exceptions import SchedulingError
from models import Doctor, TimeSlot
from services.directory_service import DirectoryService
from shared_types.availability import (
    CalendarEventSpec,
    DateRange,
    ExportResult,
    ImportResult,
    RemoteEvent,
    SyncResult,
)
from shared_types.collaborators import CalendarBridge, CalendarBridgeFactory
from utils.datetime_utils import combine_date_time, day_end, day_start
from utils.slot_queries import find_conflicting_slot, get_slots_in_range, get_untagged_slots_in_range
from utils.time_utils import format_interval, validate_time_range

logger = logging.getLogger(__name__)

SKIP_MISSING_TIMES = "Missing start or end time"
SKIP_MULTI_DAY = "Event spans multiple days"
SKIP_OVERLAP = "Overlaps with existing time slot"
SKIP_ALREADY_IMPORTED = "Already imported"


class CalendarSyncService:
    """
    Maps between local time slots and events on a doctor's external calendar.

    Attributes:
        config: Scheduling configuration (timezone, markers, event colour)
        bridge_factory: Builds a fresh CalendarBridge per invocation
    """

    def __init__(self, config: SchedulingConfig, bridge_factory: CalendarBridgeFactory) -> None:
        self.config = config
        self.bridge_factory = bridge_factory

    # ===== Mapping helpers =====

    def event_to_slot_times(self, event: RemoteEvent) -> Union[Tuple[date, str, str], str]:
        """
        Derive ``(date, start_time, end_time)`` in the clinic timezone for an event.

        Returns:
            The slot times, or a skip reason string if the event cannot become a slot
        """
        if event.start is None or event.end is None:
            return SKIP_MISSING_TIMES
        tz = self.config.tzinfo
        start = event.start.astimezone(tz) if event.start.tzinfo else event.start.replace(tzinfo=tz)
        end = event.end.astimezone(tz) if event.end.tzinfo else event.end.replace(tzinfo=tz)
        if start.date() != end.date():
            return SKIP_MULTI_DAY
        return start.date(), f"{start.hour:02d}:{start.minute:02d}", f"{end.hour:02d}:{end.minute:02d}"

    def is_availability_event(self, event: RemoteEvent) -> bool:
        """Heuristic used by sync: the summary contains one of the availability markers."""
        summary = event.summary or ""
        return any(marker and marker in summary for marker in self.config.availability_markers)

    def build_event_spec(self, doctor: Doctor, slot: TimeSlot) -> CalendarEventSpec:
        tz = self.config.tzinfo
        return CalendarEventSpec(
            summary=f"Available: {DirectoryService.get_doctor_display_name(doctor)}",
            description=CALENDAR_EVENT_DESCRIPTION.format(app_name=self.config.app_name),
            start=combine_date_time(slot.date, slot.start_time, tz),
            end=combine_date_time(slot.date, slot.end_time, tz),
            color_id=self.config.calendar_event_color_id,
            transparent=True,
            use_default_reminders=False,
        )

    def _list_remote_events(self, bridge: CalendarBridge, credential: str, date_range: DateRange) -> List[RemoteEvent]:
        tz = self.config.tzinfo
        return bridge.list_events(credential, day_start(date_range.start_date, tz), day_end(date_range.end_date, tz))

    def _create_slot_from_event(
        self,
        db: Session,
        doctor: Doctor,
        event: RemoteEvent,
    ) -> Union[TimeSlot, str]:
        """
        Create a slot tagged with the event id, applying the manual-creation overlap policy.

        Returns:
            The new slot, or a skip reason string

        Raises:
            SchedulingError: If the event times are not valid slot times
            IntegrityError: If a concurrent writer took the same start time
        """
        times = self.event_to_slot_times(event)
        if isinstance(times, str):
            return times
        day, start_time, end_time = times
        start_time, end_time = validate_time_range(start_time, end_time)

        if db.query(TimeSlot.id).filter(
            TimeSlot.doctor_id == doctor.id, TimeSlot.external_event_id == event.id
        ).first() is not None:
            return SKIP_ALREADY_IMPORTED
        if find_conflicting_slot(db, doctor.id, day, start_time, end_time) is not None:
            return SKIP_OVERLAP

        slot = TimeSlot(
            doctor_id=doctor.id,
            date=day,
            start_time=start_time,
            end_time=end_time,
            status=SLOT_STATUS_AVAILABLE,
            external_event_id=event.id,
        )
        with db.begin_nested():
            db.add(slot)
        return slot

    # ===== Import =====

    def import_events(self, db: Session, doctor: Doctor, credential: str, date_range: DateRange) -> ImportResult:
        """
        Create local slots from the doctor's calendar events in the range.

        Events without timestamps, spanning midnight, overlapping an existing
        slot of any status, or already imported are skipped with a reason.
        """
        bridge = self.bridge_factory()
        events = self._list_remote_events(bridge, credential, date_range)
        result = ImportResult()

        for event in events:
            try:
                outcome = self._create_slot_from_event(db, doctor, event)
            except (SchedulingError, IntegrityError) as e:
                logger.warning(f"Failed to import event {event.id} for doctor {doctor.id}: {e}")
                result.errors += 1
                result.details.append({"event_id": event.id, "event": event.summary, "status": "error", "error": str(e)})
                continue

            if isinstance(outcome, str):
                result.skipped += 1
                result.details.append({"event_id": event.id, "event": event.summary, "status": "skipped", "reason": outcome})
            else:
                result.imported += 1
                result.details.append({
                    "event_id": event.id,
                    "event": event.summary,
                    "status": "imported",
                    "slot_id": outcome.id,
                    "slot": format_interval(outcome.start_time, outcome.end_time),
                })

        logger.info(
            f"Imported calendar events for doctor {doctor.id}: "
            f"{result.imported} imported, {result.skipped} skipped, {result.errors} errors"
        )
        return result

    # ===== Export =====

    def _export_slot(self, bridge: CalendarBridge, credential: str, doctor: Doctor, slot: TimeSlot) -> str:
        event_id = bridge.insert_event(credential, self.build_event_spec(doctor, slot))
        slot.external_event_id = event_id
        return event_id

    def export_slots(self, db: Session, doctor: Doctor, credential: str, date_range: DateRange) -> ExportResult:
        """Create a calendar event for every slot in the range not yet mapped to one."""
        bridge = self.bridge_factory()
        result = ExportResult()

        for slot in get_untagged_slots_in_range(db, doctor.id, date_range.start_date, date_range.end_date):
            try:
                event_id = self._export_slot(bridge, credential, doctor, slot)
            except SchedulingError as e:
                logger.warning(f"Failed to export slot {slot.id} for doctor {doctor.id}: {e}")
                result.errors += 1
                result.details.append({"slot_id": slot.id, "status": "error", "error": str(e)})
                continue
            result.exported += 1
            result.details.append({"slot_id": slot.id, "status": "exported", "event_id": event_id})

        db.flush()
        logger.info(
            f"Exported slots for doctor {doctor.id}: "
            f"{result.exported} exported, {result.skipped} skipped, {result.errors} errors"
        )
        return result

    # ===== Sync =====

    def sync(self, db: Session, doctor: Doctor, credential: str, date_range: DateRange) -> SyncResult:
        """
        Two-way sync between local slots and remote events in the range.

        1. A tagged slot whose event is still present is considered reconciled.
        2. An untagged slot is exported as a new event.
        3. Leftover events that look like availability become new tagged slots.

        Sync only creates. A remote event whose time changed, or a tagged slot
        whose event was deleted remotely, is not detected, so ``updated`` and
        ``deleted`` stay 0.
        """
        bridge = self.bridge_factory()
        remote_events: Dict[str, RemoteEvent] = {
            event.id: event for event in self._list_remote_events(bridge, credential, date_range)
        }
        result = SyncResult()

        for slot in get_slots_in_range(db, doctor.id, date_range.start_date, date_range.end_date):
            if slot.external_event_id:
                # Presence of the mapping is enough; no field-level diffing
                remote_events.pop(slot.external_event_id, None)
                continue
            try:
                event_id = self._export_slot(bridge, credential, doctor, slot)
            except SchedulingError as e:
                logger.warning(f"Sync failed to export slot {slot.id} for doctor {doctor.id}: {e}")
                result.errors += 1
                result.details.append({"slot_id": slot.id, "status": "error", "error": str(e)})
                continue
            result.created += 1
            result.details.append({"slot_id": slot.id, "status": "created", "event_id": event_id})
        db.flush()

        for event in remote_events.values():
            if not self.is_availability_event(event):
                continue
            try:
                outcome = self._create_slot_from_event(db, doctor, event)
            except (SchedulingError, IntegrityError) as e:
                logger.warning(f"Sync failed to import event {event.id} for doctor {doctor.id}: {e}")
                result.errors += 1
                result.details.append({"event_id": event.id, "status": "error", "error": str(e)})
                continue
            if isinstance(outcome, str):
                result.details.append({"event_id": event.id, "status": "skipped", "reason": outcome})
                continue
            result.created += 1
            result.details.append({"event_id": event.id, "status": "imported", "slot_id": outcome.id})

        logger.info(
            f"Synced calendar for doctor {doctor.id}: {result.created} created, "
            f"{result.updated} updated, {result.deleted} deleted, {result.errors} errors"
        )
        return result
