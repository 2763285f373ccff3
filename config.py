import os
from dataclasses import dataclass
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent
DATA_DIR = Path(os.getenv("ATTENDANCE_DATA_DIR", str(BASE_DIR / "data")))
DB_PATH = Path(os.getenv("ATTENDANCE_DB_PATH", str(DATA_DIR / "attendance.db")))
ENROLL_DIR = DATA_DIR / "enroll"
REPORTS_DIR = Path(os.getenv("REPORTS_DIR", str(BASE_DIR / "reports")))

# Create folders if missing
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Recognition
FACE_DISTANCE_THRESHOLD = float(os.getenv("FACE_DISTANCE_THRESHOLD", "0.5"))  # lower = stricter
DESCRIPTOR_DIM = int(os.getenv("DESCRIPTOR_DIM", "128"))
UNKNOWN_LABEL = os.getenv("UNKNOWN_LABEL", "unknown")

# Storage
SQLITE_TIMEOUT_SECONDS = float(os.getenv("SQLITE_TIMEOUT_SECONDS", "5.0"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


@dataclass(frozen=True)
class EngineConfig:
    threshold: float = FACE_DISTANCE_THRESHOLD
    descriptor_dim: int = DESCRIPTOR_DIM
    unknown_label: str = UNKNOWN_LABEL
