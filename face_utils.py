from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol, Sequence, Tuple

import cv2
import numpy as np

from config import DESCRIPTOR_DIM
from errors import ValidationError

Box = Tuple[int, int, int, int]  # (top, right, bottom, left)


@dataclass
class Detection:
	descriptor: Sequence[float]
	box: Box


class EmbeddingOracle(Protocol):
	def detect(self, image: np.ndarray) -> List[Detection]:
		...


def decode_image(data: bytes) -> np.ndarray:
	if not data:
		raise ValidationError("image", "Image is required")
	img_array = np.frombuffer(data, dtype=np.uint8)
	bgr = cv2.imdecode(img_array, cv2.IMREAD_COLOR)
	if bgr is None:
		raise ValidationError("image", "Image could not be decoded")
	return bgr


def detect_faces_bboxes_bgr(frame_bgr: np.ndarray) -> List[Box]:
	gray = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2GRAY)
	cascade = cv2.CascadeClassifier(cv2.data.haarcascades + "haarcascade_frontalface_default.xml")
	rects = cascade.detectMultiScale(gray, scaleFactor=1.05, minNeighbors=3, minSize=(48, 48))
	bboxes: List[Box] = []
	for (x, y, w, h) in rects:
		top, left, bottom, right = y, x, y + h, x + w
		bboxes.append((int(top), int(right), int(bottom), int(left)))
	# Reading order, so detection order is stable for the same image.
	bboxes.sort(key=lambda b: (b[0], b[3]))
	return bboxes


def compute_face_embedding(frame_bgr: np.ndarray, bbox: Box, dim: int = DESCRIPTOR_DIM) -> np.ndarray:
	"""Return a placeholder descriptor of length ``dim``.

	The crop is resized to 32x32 grey levels, average-pooled into ``dim`` bins
	and L2 normalized. It stands in for a real embedding model.
	"""
	top, right, bottom, left = bbox
	crop = frame_bgr[max(0, top):max(top + 1, bottom), max(0, left):max(left + 1, right)]
	if crop.size == 0:
		return np.zeros((dim,), dtype=np.float32)
	gray = cv2.cvtColor(crop, cv2.COLOR_BGR2GRAY) if crop.ndim == 3 else crop
	resized = cv2.resize(gray, (32, 32), interpolation=cv2.INTER_AREA)
	flat = (resized.astype(np.float32) / 255.0).flatten()
	pooled = np.array([chunk.mean() for chunk in np.array_split(flat, dim)], dtype=np.float32)
	n = np.linalg.norm(pooled) + 1e-9
	return (pooled / n).astype(np.float32)


class HaarEmbeddingOracle:
	"""Default oracle: OpenCV Haar cascade boxes plus the placeholder descriptor."""

	def __init__(self, dim: int = DESCRIPTOR_DIM) -> None:
		self.dim = int(dim)

	def detect(self, image: np.ndarray) -> List[Detection]:
		boxes = detect_faces_bboxes_bgr(image)
		return [Detection(descriptor=compute_face_embedding(image, b, self.dim).astype(float).tolist(), box=b) for b in boxes]
