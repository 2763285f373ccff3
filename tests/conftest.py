from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import List, Sequence

# Keep config.py from creating data/ inside the checkout.
os.environ.setdefault("ATTENDANCE_DATA_DIR", tempfile.mkdtemp(prefix="attendance-tests-"))

import numpy as np
import pytest

from config import EngineConfig
from db import AttendanceLedger, DescriptorStore
from face_engine import FaceRecognitionEngine
from face_utils import Detection

DIM = 128
BLANK = np.zeros((4, 4, 3), dtype=np.uint8)


def base_descriptor() -> List[float]:
    """[0.1, 0.2, ..., 0.9, 0.0, 0.1, ...] with 128 values."""
    return [((i + 1) % 10) / 10 for i in range(DIM)]


def shifted(descriptor: Sequence[float], distance: float, index: int = 0) -> List[float]:
    """Copy of ``descriptor`` at exactly ``distance`` (Euclidean) from it."""
    out = list(descriptor)
    out[index] += distance
    return out


def one_hot(index: int, value: float = 1.0, dim: int = DIM) -> List[float]:
    out = [0.0] * dim
    out[index] = value
    return out


def detection(descriptor: Sequence[float], box=(0, 10, 10, 0)) -> Detection:
    return Detection(descriptor=list(descriptor), box=box)


class FakeOracle:
    """Returns whatever detections the test queued, ignoring the image."""

    def __init__(self, detections: Sequence[Detection] = ()) -> None:
        self.detections = list(detections)
        self.calls = 0

    def detect(self, image) -> List[Detection]:
        self.calls += 1
        return list(self.detections)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "attendance.db"


@pytest.fixture
def store(db_path: Path) -> DescriptorStore:
    return DescriptorStore(db_path, dimension=DIM)


@pytest.fixture
def ledger(db_path: Path) -> AttendanceLedger:
    return AttendanceLedger(db_path)


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def engine(store: DescriptorStore, ledger: AttendanceLedger, oracle: FakeOracle) -> FaceRecognitionEngine:
    return FaceRecognitionEngine(oracle, store=store, ledger=ledger, config=EngineConfig(threshold=0.5, descriptor_dim=DIM))
