"""
ledger_engines.tracer -- invocation trace for pure engines.

``@traced_engine(name, version, fingerprint_fields)`` wraps an engine
function and emits one ``LEDGER_ENGINE_TRACE`` log record per call with
the engine name and version, a deterministic SHA-256 fingerprint of the
selected keyword arguments, the duration, and optionally a few fields
summarising the result. The decorator reads kwargs and the return value
and logs; it never mutates either, so engines stay pure.

Usage:
    @traced_engine("cascade_payment", "1.0", fingerprint_fields=("amount",))
    def plan_cascade(*, installments, target_installment_number, amount):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, is_dataclass
from typing import Any

_logger = logging.getLogger("ledger_kernel.engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of a value: dict keys sorted, sequences in order."""
    if value is None:
        return "null"
    if isinstance(value, str):
        return value
    if is_dataclass(value) and not isinstance(value, type):
        return _canonicalize(asdict(value))
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """16-hex-char SHA-256 prefix over the named kwargs; missing ones are "null"."""
    parts = [f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
    summarize: Callable[[Any], dict[str, Any]] | None = None,
) -> Callable:
    """``summarize`` maps the engine result to extra trace fields."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                fp = compute_input_fingerprint(fingerprint_fields, kwargs)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            summary = summarize(result) if summarize is not None else {}

            _logger.info(
                "LEDGER_ENGINE_TRACE",
                extra={
                    "trace_type": "LEDGER_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                    **summary,
                },
            )
            return result

        return wrapper

    return decorator
