from __future__ import annotations

import logging
import time
from pathlib import Path
from tempfile import gettempdir
from typing import Any

from pythonjsonlogger import jsonlogger

from .errors import normalize_reason_code
from .settings import settings

LOGGER_NAME = "risk_router"


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def _writable_log_dir(out_dir: str) -> Path | None:
    for log_dir in (
        Path(out_dir) / "logs",
        Path(gettempdir()) / LOGGER_NAME / "logs",
    ):
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            probe = log_dir / ".writetest"
            probe.touch(exist_ok=True)
            probe.unlink(missing_ok=True)
        except OSError:
            continue
        return log_dir
    return None


def get_logger() -> logging.Logger:
    """Return the JSON event logger, attaching handlers on first use only."""
    logger = logging.getLogger(LOGGER_NAME)
    if getattr(logger, "_risk_router_ready", False):
        return logger

    logger.setLevel(_parse_level(settings.log_level))
    logger.propagate = False
    formatter = jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(message)s")

    stream = logging.StreamHandler()
    stream.setFormatter(formatter)
    logger.addHandler(stream)

    log_dir = _writable_log_dir(settings.out_dir)
    if log_dir is not None:
        try:
            jsonl = logging.FileHandler(log_dir / "requests.log.jsonl", encoding="utf-8")
        except OSError:
            jsonl = None
        if jsonl is not None:
            jsonl.setFormatter(formatter)
            logger.addHandler(jsonl)

    logger._risk_router_ready = True  # type: ignore[attr-defined]
    return logger


def log_event(event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    get_logger().log(level, event, extra={"event": event, **fields})


def log_failure(event: str, exc: BaseException, **fields: Any) -> None:
    """Log a request-level failure with the error's reason code when it has one."""
    log_event(
        event,
        level=logging.WARNING,
        ok=False,
        error=str(exc) or type(exc).__name__,
        error_type=type(exc).__name__,
        reason_code=normalize_reason_code(getattr(exc, "reason_code", ""), default="internal_error"),
        **fields,
    )


def elapsed_ms(t0: float) -> float:
    return round((time.perf_counter() - t0) * 1000, 2)
