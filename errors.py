"""Error kinds raised by the matching, enrollment and storage layers."""

from __future__ import annotations


class AttendanceError(Exception):
	"""Base class for every error this project raises on purpose."""


class ValidationError(AttendanceError):
	def __init__(self, field: str, message: str = "") -> None:
		self.field = field
		self.message = message or f"{field} is required"
		super().__init__(self.message)


class NoFaceDetected(AttendanceError):
	def __init__(self) -> None:
		super().__init__("No face detected in the image")


class AmbiguousFace(AttendanceError):
	def __init__(self, count: int) -> None:
		self.count = int(count)
		super().__init__(
			f"Multiple faces detected ({self.count}). Please upload a single-face image."
		)


class StoreUnavailable(AttendanceError):
	"""The SQLite store could not complete an operation. Never retried here."""


class NotFound(AttendanceError):
	def __init__(self, identity: str) -> None:
		self.identity = identity
		super().__init__(f'Student with Reg No "{identity}" not found')
