from __future__ import annotations

import logging
import os

from proofread.lib.diagnostics.request_context import get_request_id

_LEVEL_ALIASES: dict[str, int] = {
    "WARN": logging.WARNING,
    "TRACE": logging.DEBUG,
}

LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"


class RequestIdFilter(logging.Filter):
    """ログレコードへ現在のリクエスト ID を差し込むフィルタ。"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id()
        return True


def _normalize(value: str | int | None) -> int:
    if isinstance(value, int):
        return value

    if value is None:
        return logging.INFO

    text = value.strip()
    if not text:
        return logging.INFO

    try:
        return int(text)
    except ValueError:
        pass

    upper = text.upper()
    if upper in _LEVEL_ALIASES:
        return _LEVEL_ALIASES[upper]

    return getattr(logging, upper, logging.INFO)


def resolve_log_level(*candidates: str | int | None, default: str | int | None = None) -> int:
    for candidate in candidates:
        if candidate is None:
            continue
        return _normalize(candidate)

    if default is not None:
        return _normalize(default)

    return logging.INFO


def setup_logging(
    level: str | int | None = None,
    *,
    env_key: str = "LOG_LEVEL",
    default: str | int | None = logging.INFO,
) -> int:
    resolved = resolve_log_level(level, os.getenv(env_key), default=default)
    logging.basicConfig(level=resolved, format=LOG_FORMAT, force=True)
    root = logging.getLogger()
    root.setLevel(resolved)
    for handler in root.handlers:
        if not any(isinstance(f, RequestIdFilter) for f in handler.filters):
            handler.addFilter(RequestIdFilter())
    return resolved


__all__ = [
    "LOG_FORMAT",
    "RequestIdFilter",
    "resolve_log_level",
    "setup_logging",
]
