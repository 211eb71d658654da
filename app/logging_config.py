"""
Structured Logging Configuration

  - JSON lines in production / staging, one readable line per record in dev
  - request_id for HTTP traffic, check_source for probe runs (manual / scheduled)
  - customer contact details and credentials are masked before anything is written
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from typing import Any

from app.config import settings

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="-")
check_source_ctx: ContextVar[str] = ContextVar("check_source", default="-")


def generate_request_id() -> str:
    return uuid.uuid4().hex[:12]


# ═══════════════════════════════════════════
#  Masking
# ═══════════════════════════════════════════

_EMAIL = re.compile(r"\b([A-Za-z0-9._%+-])[A-Za-z0-9._%+-]*@([A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
# International numbers as customers type them in request forms: +963 9xx xxx xxx
_PHONE = re.compile(r"\+\d[\d\s-]{6,}(\d{2})\b")
_CREDENTIAL = re.compile(
    r'(["\']?(?:password|token|secret|authorization|x-admin-token)["\']?\s*[:=]\s*)(["\']?)[^"\'\s,}]+\2',
    re.I,
)


def mask_pii(text: str) -> str:
    text = _CREDENTIAL.sub(r"\1\2***\2", text)
    text = _EMAIL.sub(r"\1***@\2", text)
    text = _PHONE.sub(r"***\1", text)
    return text


# ═══════════════════════════════════════════
#  Formatters
# ═══════════════════════════════════════════

class JSONFormatter(logging.Formatter):

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": mask_pii(record.getMessage()),
            "request_id": request_id_ctx.get(),
            "check_source": check_source_ctx.get(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exc"] = mask_pii(self.formatException(record.exc_info))

        return json.dumps(
            {k: v for k, v in entry.items() if v not in (None, "", "-")},
            ensure_ascii=False,
            default=str,
        )


class HumanFormatter(logging.Formatter):
    FORMAT = "%(asctime)s %(levelname)-7s %(name)s [%(context)s] %(message)s"

    def format(self, record: logging.LogRecord) -> str:
        source = check_source_ctx.get()
        record.context = request_id_ctx.get() if source == "-" else source
        return mask_pii(super().format(record))


def setup_logging() -> None:
    root = logging.getLogger()
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if settings.is_production or settings.is_staging:
        handler.setFormatter(JSONFormatter())
        root.setLevel(logging.INFO)
    else:
        handler.setFormatter(HumanFormatter(HumanFormatter.FORMAT, datefmt="%H:%M:%S"))
        root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    for name in ("uvicorn.access", "httpcore", "httpx", "asyncio", "celery", "kombu"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
