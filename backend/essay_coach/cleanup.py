from __future__ import annotations
import logging
import time
from typing import Dict, Optional

from .controller import StageController


logger = logging.getLogger(__name__)


def purge_idle_sessions(sessions: Dict[str, StageController], max_idle_seconds: int, *, now: Optional[float] = None) -> int:
	"""Drop sessions untouched for longer than ``max_idle_seconds``.

	Sessions waiting on the coach are kept regardless of age.
	"""
	if max_idle_seconds <= 0:
		return 0
	now = time.monotonic() if now is None else now
	stale = [
		session_id
		for session_id, controller in sessions.items()
		if not controller.busy and now - controller.last_active > max_idle_seconds
	]
	for session_id in stale:
		sessions.pop(session_id, None)
	if stale:
		logger.info("Evicted %d idle coaching session(s)", len(stale))
	return len(stale)
