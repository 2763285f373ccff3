from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from config import ENROLL_DIR, EngineConfig
from db import initialize_database
from enrollment import EnrollmentRequest
from errors import AttendanceError
from face_engine import FaceRecognitionEngine
from face_utils import EmbeddingOracle
from log import get_logger

logger = get_logger(__name__)

IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png"}


def parse_enroll_filename(path: Path) -> EnrollmentRequest:
	"""``<reg>__<name>__<department>__<level>.jpg``; ``+`` in reg stands for ``/``."""
	parts = path.stem.split("__")
	if len(parts) != 4:
		raise ValueError(f"expected <reg>__<name>__<department>__<level>, got {path.name!r}")
	reg, name, department, level = parts
	return EnrollmentRequest.build(reg.replace("+", "/"), name.replace("_", " "), department, level)


def main(
	db_path: Optional[Path] = None,
	enroll_dir: Path = ENROLL_DIR,
	oracle: Optional[EmbeddingOracle] = None,
	config: Optional[EngineConfig] = None,
) -> Dict[str, str]:
	initialize_database(db_path)
	engine = FaceRecognitionEngine.open(db_path, oracle=oracle, config=config)

	results: Dict[str, str] = {}
	enroll_dir = Path(enroll_dir)
	if not enroll_dir.is_dir():
		logger.info("No enrollment folder at %s; schema only.", enroll_dir)
		return results

	for path in sorted(enroll_dir.iterdir()):
		if path.suffix.lower() not in IMAGE_SUFFIXES:
			continue
		try:
			request = parse_enroll_filename(path)
			result = engine.enroll(request, path.read_bytes())
		except (AttendanceError, ValueError) as exc:
			logger.warning("Skipping %s: %s", path.name, exc)
			results[path.name] = f"error: {exc}"
			continue
		logger.info(result.message)
		results[path.name] = "created" if result.created else "updated"

	logger.info("Seed complete: %d file(s) processed.", len(results))
	return results


if __name__ == "__main__":
	main()
