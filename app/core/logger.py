"""
Centralized logging module for the payroll/HR backend.

Follows Layer 6 rules:
- Structured logging suitable for Grafana/Prometheus/Loki/ELK
- Appropriate log levels (info, warning, error)
- NEVER logs passwords, tokens, secrets, or full request bodies with sensitive data
- Security-sensitive actions emit structured logs with user_id, tenant_id, action, result, timestamp
"""
import logging
import json
from typing import Any, Dict, Optional
from datetime import datetime, timezone

# Configure root logger
logger = logging.getLogger("payroll_hr")
logger.setLevel(logging.INFO)

# Console handler with JSON formatter for structured logs
_handler = logging.StreamHandler()
_handler.setLevel(logging.INFO)

_EXTRA_FIELDS = ("user_id", "tenant_id", "action", "result", "path", "meta")


class JSONFormatter(logging.Formatter):
    """Formatter that outputs structured JSON logs."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in _EXTRA_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)

_handler.setFormatter(JSONFormatter())
logger.addHandler(_handler)

# Prevent duplicate logs
logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Child logger under the application namespace (shares the JSON handler)."""
    return logger.getChild(name)


def log_security_event(
    action: str,
    result: str,
    user_id: Optional[str] = None,
    tenant_id: Optional[str] = None,
    meta: Optional[Dict[str, Any]] = None,
    level: str = "info",
) -> None:
    """
    Log security-sensitive actions (login, logout, company switch, guard denials).

    Emits structured logs with:
    - user_id, tenant_id (company id), action, result, timestamp
    - Additional metadata in meta dict

    Args:
        action: Action name (e.g., "login", "company_switch", "route_guard")
        result: Result status (e.g., "success", "failure", "denied")
        user_id: User ID (optional)
        tenant_id: Company ID (optional)
        meta: Additional metadata dict (optional)
        level: Log level ("info", "warning", "error")
    """
    log_method = getattr(logger, level.lower(), logger.info)
    extra: Dict[str, Any] = {
        "action": action,
        "result": result,
    }
    if user_id:
        extra["user_id"] = user_id
    if tenant_id:
        extra["tenant_id"] = tenant_id
    if meta:
        extra["meta"] = meta

    log_method("Security event", extra=extra)
