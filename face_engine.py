from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from attendance import AttendanceRecorder, RecordOutcome, recorded_events
from config import EngineConfig
from db import AttendanceEvent, AttendanceLedger, DescriptorStore, EnrollmentRecord
from enrollment import EnrollmentManager, EnrollmentRequest, EnrollmentResult
from errors import NotFound
from face_utils import Box, Detection, EmbeddingOracle, HaarEmbeddingOracle, decode_image
from matcher import MatchResult, classify_all

ImageInput = Union[bytes, bytearray, np.ndarray]


@dataclass
class RecognitionEntry:
	match: MatchResult
	box: Box
	record: Optional[EnrollmentRecord]

	def to_dict(self, unknown_label: str) -> dict:
		distance = None if math.isinf(self.match.distance) else round(self.match.distance, 4)
		if self.match.is_known and self.record is not None:
			return {
				"recognized": True,
				"name": self.record.name,
				"registration_number": self.record.identity,
				"department": self.record.department,
				"level": self.record.level,
				"distance": distance,
				"box": list(self.box),
			}
		return {"recognized": False, "label": unknown_label, "distance": distance, "box": list(self.box)}


@dataclass
class RecognitionReport:
	entries: List[RecognitionEntry]
	outcomes: List[RecordOutcome]

	@property
	def matches(self) -> List[MatchResult]:
		return [e.match for e in self.entries]

	@property
	def events(self) -> List[AttendanceEvent]:
		return recorded_events(self.outcomes)


class FaceRecognitionEngine:
	def __init__(
		self,
		oracle: EmbeddingOracle,
		store: Optional[DescriptorStore] = None,
		ledger: Optional[AttendanceLedger] = None,
		config: Optional[EngineConfig] = None,
	) -> None:
		self.config = config or EngineConfig()
		self.oracle = oracle
		self.store = store or DescriptorStore(dimension=self.config.descriptor_dim)
		self.ledger = ledger or AttendanceLedger()
		self.enrollment = EnrollmentManager(self.store)
		self.recorder = AttendanceRecorder(self.ledger)

	@classmethod
	def open(
		cls,
		db_path: Optional[Path] = None,
		oracle: Optional[EmbeddingOracle] = None,
		config: Optional[EngineConfig] = None,
	) -> "FaceRecognitionEngine":
		config = config or EngineConfig()
		return cls(
			oracle=oracle or HaarEmbeddingOracle(dim=config.descriptor_dim),
			store=DescriptorStore(db_path, dimension=config.descriptor_dim),
			ledger=AttendanceLedger(db_path),
			config=config,
		)

	def _detect(self, image: ImageInput) -> List[Detection]:
		if isinstance(image, (bytes, bytearray)):
			image = decode_image(bytes(image))
		return list(self.oracle.detect(image))

	def _match(self, detections: List[Detection]) -> Tuple[List[RecognitionEntry], Dict[str, EnrollmentRecord]]:
		records = self.store.list_all()
		by_identity = {r.identity: r for r in records}
		results = classify_all([d.descriptor for d in detections], records, self.config.threshold)
		entries = [
			RecognitionEntry(match=m, box=d.box, record=by_identity.get(m.identity) if m.is_known else None)
			for d, m in zip(detections, results)
		]
		return entries, by_identity

	def enroll(self, request: EnrollmentRequest, image: ImageInput) -> EnrollmentResult:
		return self.enrollment.enroll(request, self._detect(image))

	def classify_only(self, image: ImageInput) -> List[RecognitionEntry]:
		entries, _ = self._match(self._detect(image))
		return entries

	def recognize_and_record(
		self,
		image: ImageInput,
		as_of: Union[date, datetime, None] = None,
		course_code: Optional[str] = None,
	) -> RecognitionReport:
		entries, by_identity = self._match(self._detect(image))
		outcomes = self.recorder.record(
			[e.match for e in entries], as_of=as_of, course_code=course_code, metadata=by_identity
		)
		return RecognitionReport(entries=entries, outcomes=outcomes)

	def describe(self, entries: List[RecognitionEntry]) -> List[dict]:
		return [e.to_dict(self.config.unknown_label) for e in entries]

	def students(self) -> List[EnrollmentRecord]:
		return self.store.list_all()

	def remove_student(self, identity: str) -> EnrollmentRecord:
		identity = identity.strip()
		record = self.store.find_by_identity(identity)
		if record is None or not self.store.remove(identity):
			raise NotFound(identity)
		return record

	def attendance_for_date(self, day: Union[date, str, None] = None) -> List[AttendanceEvent]:
		return self.ledger.fetch_for_date(day or date.today())

	def attendance_for_student(self, identity: str) -> Tuple[EnrollmentRecord, List[AttendanceEvent]]:
		record = self.store.find_by_identity(identity.strip())
		if record is None:
			raise NotFound(identity)
		return record, self.ledger.fetch_for_identity(record.identity)
