from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Union

import numpy as np

from db import EnrollmentRecord, coerce_descriptor
from errors import ValidationError


@dataclass(frozen=True)
class Matched:
	identity: str
	distance: float

	@property
	def is_known(self) -> bool:
		return True

	def label(self, unknown_label: str) -> str:
		return self.identity


@dataclass(frozen=True)
class Unmatched:
	# math.inf when nothing is enrolled
	distance: float

	@property
	def is_known(self) -> bool:
		return False

	def label(self, unknown_label: str) -> str:
		return unknown_label


MatchResult = Union[Matched, Unmatched]


def _check_threshold(threshold: float) -> float:
	thr = float(threshold)
	if not math.isfinite(thr) or thr < 0:
		raise ValidationError("threshold", f"threshold must be a finite non-negative number, got {threshold!r}")
	return thr


def euclidean_distances(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
	return np.linalg.norm(matrix - query.reshape(1, -1), axis=1)


def _gallery(records: Sequence[EnrollmentRecord]):
	# Sorted by identity so argmin's first-occurrence rule gives the lowest key on ties.
	ordered = sorted(records, key=lambda r: r.identity)
	try:
		matrix = np.asarray([r.descriptor for r in ordered], dtype=np.float64)
	except ValueError as exc:
		raise ValidationError("descriptor", f"enrolled descriptors differ in length: {exc}") from exc
	return [r.identity for r in ordered], matrix


def _classify_in(query: Sequence[float], identities: List[str], matrix: np.ndarray, threshold: float) -> MatchResult:
	if not identities:
		return Unmatched(distance=math.inf)
	q = np.asarray(coerce_descriptor(query), dtype=np.float64)
	if matrix.ndim != 2 or q.shape[0] != matrix.shape[1]:
		raise ValidationError(
			"descriptor", f"query has {q.shape[0]} values, enrolled descriptors have {matrix.shape[-1]}"
		)
	dists = euclidean_distances(q, matrix)
	best = int(np.argmin(dists))
	d_min = float(dists[best])
	if d_min <= threshold:
		return Matched(identity=identities[best], distance=d_min)
	return Unmatched(distance=d_min)


def classify(query: Sequence[float], records: Sequence[EnrollmentRecord], threshold: float) -> MatchResult:
	"""Nearest enrolled identity within ``threshold`` (inclusive), else Unmatched."""
	thr = _check_threshold(threshold)
	identities, matrix = _gallery(records)
	return _classify_in(query, identities, matrix, thr)


def classify_all(
	queries: Sequence[Sequence[float]],
	records: Sequence[EnrollmentRecord],
	threshold: float,
) -> List[MatchResult]:
	"""Classify each query independently; output order follows ``queries``."""
	thr = _check_threshold(threshold)
	identities, matrix = _gallery(records)
	return [_classify_in(q, identities, matrix, thr) for q in queries]
