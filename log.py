"""Logging setup."""

import logging

from config import LOG_LEVEL

logging.basicConfig(
	level=getattr(logging, LOG_LEVEL, logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def get_logger(name):
	"""Return a named logger."""
	logger = logging.getLogger(name)
	return logger
