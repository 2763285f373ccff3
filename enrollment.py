from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from db import DescriptorStore
from errors import AmbiguousFace, NoFaceDetected, ValidationError
from face_utils import Detection


def _required(field: str, label: str, value: Optional[str]) -> str:
	text = str(value).strip() if value is not None else ""
	if not text:
		raise ValidationError(field, f"{label} is required")
	return text


@dataclass(frozen=True)
class EnrollmentRequest:
	identity: str
	name: str
	department: str
	level: str

	@classmethod
	def build(
		cls,
		identity: Optional[str],
		name: Optional[str],
		department: Optional[str],
		level: Optional[str],
	) -> "EnrollmentRequest":
		"""Trim every field; the first empty one raises ValidationError."""
		name = _required("name", "Name", name)
		identity = _required("identity", "Registration Number", identity)
		department = _required("department", "Department", department)
		level = _required("level", "Level", level)
		return cls(identity=identity, name=name, department=department, level=level)


@dataclass(frozen=True)
class EnrollmentResult:
	identity: str
	name: str
	created: bool

	@property
	def message(self) -> str:
		if self.created:
			return f'Registered "{self.name}" successfully'
		return f'Updated face for "{self.name}"'


class EnrollmentManager:
	def __init__(self, store: DescriptorStore) -> None:
		self.store = store

	def enroll(self, request: EnrollmentRequest, detections: Sequence[Detection]) -> EnrollmentResult:
		# Re-validate: callers may construct the dataclass directly.
		request = EnrollmentRequest.build(request.identity, request.name, request.department, request.level)
		if len(detections) == 0:
			raise NoFaceDetected()
		if len(detections) > 1:
			raise AmbiguousFace(len(detections))
		created = self.store.upsert(
			request.identity,
			detections[0].descriptor,
			name=request.name,
			department=request.department,
			level=request.level,
		)
		return EnrollmentResult(identity=request.identity, name=request.name, created=created)
