"""Degraded-mode signal

Raised when a transition committed but a follow-up side effect (audit
delivery) could not be completed. Surfaced by the /health endpoint.
"""
import threading
from typing import Any, Dict, List, Optional

from .logger import get_logger
from .time import utc_now, format_iso

logger = get_logger(__name__)


class DegradedModeSignal:
    """Thread-safe record of degraded-mode incidents"""

    def __init__(self, max_incidents: int = 100):
        self._lock = threading.Lock()
        self._incidents: List[Dict[str, Any]] = []
        self._max_incidents = max_incidents

    def raise_signal(self, reason: str, details: Optional[Dict[str, Any]] = None) -> None:
        """Record an incident and log it at ERROR"""
        incident = {
            "reason": reason,
            "details": details or {},
            "raised_at": format_iso(utc_now()),
        }
        with self._lock:
            self._incidents.append(incident)
            del self._incidents[:-self._max_incidents]
        logger.error(f"Degraded mode: {reason}", extra={"action": reason})

    @property
    def is_degraded(self) -> bool:
        with self._lock:
            return bool(self._incidents)

    def incidents(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._incidents)

    def clear(self) -> None:
        with self._lock:
            self._incidents.clear()

    def snapshot(self) -> Dict[str, Any]:
        """Summary for health reporting"""
        incidents = self.incidents()
        return {
            "degraded": bool(incidents),
            "incident_count": len(incidents),
            "last_incident": incidents[-1] if incidents else None,
        }


# Process-wide signal
degraded_signal = DegradedModeSignal()
