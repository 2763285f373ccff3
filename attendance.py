from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Union

from db import AttendanceEvent, AttendanceLedger, EnrollmentRecord, day_iso
from errors import StoreUnavailable
from matcher import MatchResult


class RecordStatus(str, enum.Enum):
	RECORDED = "recorded"
	ALREADY_RECORDED = "already_recorded"
	FAILED = "failed"


@dataclass
class RecordOutcome:
	identity: str
	status: RecordStatus
	event: Optional[AttendanceEvent] = None
	error: Optional[StoreUnavailable] = None


def _split_as_of(as_of: Union[date, datetime, str, None]):
	if as_of is None:
		as_of = datetime.now()
	if isinstance(as_of, datetime):
		return as_of.date().isoformat(), as_of.isoformat(timespec="seconds")
	return day_iso(as_of), datetime.now().isoformat(timespec="seconds")


class AttendanceRecorder:
	"""Turns known matches into at most one attendance row per identity per day."""

	def __init__(self, ledger: AttendanceLedger) -> None:
		self.ledger = ledger

	def record(
		self,
		match_results: Sequence[MatchResult],
		as_of: Union[date, datetime, str, None] = None,
		course_code: Optional[str] = None,
		metadata: Optional[Dict[str, EnrollmentRecord]] = None,
	) -> List[RecordOutcome]:
		"""Write one event per known identity; each write is reported on its own.

		``metadata`` maps identity to its enrolled record, used to snapshot
		name/department/level onto the row.
		"""
		day, stamp = _split_as_of(as_of)
		metadata = metadata or {}
		outcomes: List[RecordOutcome] = []
		for result in match_results:
			if not result.is_known:
				continue
			identity = result.identity
			info = metadata.get(identity)
			event = AttendanceEvent(
				identity=identity,
				date=day,
				created_at=stamp,
				name=info.name if info else None,
				department=info.department if info else None,
				level=info.level if info else None,
				course_code=course_code or None,
			)
			try:
				written = self.ledger.insert_once(event)
			except StoreUnavailable as exc:
				outcomes.append(RecordOutcome(identity, RecordStatus.FAILED, error=exc))
				continue
			if written:
				outcomes.append(RecordOutcome(identity, RecordStatus.RECORDED, event=event))
			else:
				outcomes.append(RecordOutcome(identity, RecordStatus.ALREADY_RECORDED))
		return outcomes


def recorded_events(outcomes: Sequence[RecordOutcome]) -> List[AttendanceEvent]:
	return [o.event for o in outcomes if o.status is RecordStatus.RECORDED and o.event is not None]
