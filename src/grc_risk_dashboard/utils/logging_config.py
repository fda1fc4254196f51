import json
import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

session_id_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base: Dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
        }
        if getattr(record, "session_id", None):
            base["session_id"] = record.session_id
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base)


class SessionIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = session_id_var.get()
        return True


def configure_logging(log_level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(SessionIdFilter())
    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers = [handler]


def ensure_session_id(existing: Optional[str] = None) -> str:
    session_id = existing or str(uuid.uuid4())
    session_id_var.set(session_id)
    return session_id
