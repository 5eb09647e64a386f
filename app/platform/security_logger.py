import json
import logging
import os
import re
from collections import Counter
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Literal, Optional

from app.platform.logger import get_logger, resolve_log_dir, rotating_handler

EventType = Literal["security", "audit", "error", "rate_limit"]
Severity = Literal["low", "medium", "high", "critical"]

MAX_FIELD_LENGTH = 500
_CONTROL_CHARS = re.compile(r"[\r\n\t]")

console_logger = get_logger("security")


def sanitize_for_log(value: Any) -> str:
    if not isinstance(value, str):
        value = json.dumps(value, default=str)
    return _CONTROL_CHARS.sub(" ", value)[:MAX_FIELD_LENGTH]


class SecurityLogger:
    """
    Appends one JSON object per security event to `security.log`.

    High and critical events are echoed to the application log as well.
    """

    def __init__(self, log_dir: Optional[str] = None):
        self.log_file = os.path.join(resolve_log_dir(log_dir), "security.log")

        self._events = logging.getLogger(f"security.events.{id(self)}")
        self._events.setLevel(logging.INFO)
        self._events.propagate = False
        self._events.addHandler(rotating_handler(self.log_file, logging.Formatter("%(message)s")))

        self._lock = Lock()
        self._by_type: Counter = Counter()
        self._by_severity: Counter = Counter()
        self._last_event_at: Optional[str] = None

    def log_event(
        self,
        type: EventType,
        ip: str,
        message: str,
        severity: Severity,
        user_agent: Optional[str] = None,
        domain: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Dict[str, Any]:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "type": type,
            "ip": sanitize_for_log(ip),
            "userAgent": sanitize_for_log(user_agent) if user_agent else None,
            "domain": sanitize_for_log(domain) if domain else None,
            "email": sanitize_for_log(email) if email else None,
            "message": sanitize_for_log(message),
            "severity": severity,
        }

        try:
            self._events.info(json.dumps(entry))
        except Exception as e:
            console_logger.error(f"Failed to write security log entry: {e}")

        if severity in ("high", "critical"):
            console_logger.error(f"[SECURITY] {type.upper()}: {entry['message']}")

        with self._lock:
            self._by_type[type] += 1
            self._by_severity[severity] += 1
            self._last_event_at = entry["timestamp"]
        return entry

    def log_suspicious_activity(self, ip: str, user_agent: Optional[str], reason: str):
        return self.log_event(
            "security", ip, f"Suspicious activity detected: {reason}", "high", user_agent=user_agent
        )

    def log_rate_limit_exceeded(self, ip: str, user_agent: Optional[str], endpoint: str):
        return self.log_event(
            "rate_limit", ip, f"Rate limit exceeded for endpoint: {endpoint}", "medium", user_agent=user_agent
        )

    def log_audit_request(
        self,
        ip: str,
        user_agent: Optional[str],
        domain: str,
        mode: str,
        email: Optional[str] = None,
    ):
        return self.log_event(
            "audit",
            ip,
            f"{mode} audit requested for {domain}",
            "low",
            user_agent=user_agent,
            domain=domain,
            email=email,
        )

    def log_security_error(self, ip: str, user_agent: Optional[str], error: str):
        return self.log_event("error", ip, f"Security error: {error}", "high", user_agent=user_agent)

    def get_statistics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total": sum(self._by_type.values()),
                "byType": dict(self._by_type),
                "bySeverity": dict(self._by_severity),
                "lastEventAt": self._last_event_at,
            }


security_logger = SecurityLogger()
