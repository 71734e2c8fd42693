"""
Engine invocation tracing (``statement_engines.tracer``).

``@traced_engine`` wraps a pure calculation and emits one
``STATEMENT_ENGINE_TRACE`` record per call on
``statement_kernel.engines.tracer``:

* ``engine_name`` / ``engine_version`` -- which calculation ran
* ``input_fingerprint`` -- first 16 hex chars of a SHA-256 over the
  selected arguments, so two generations over the same inputs can be
  matched in the logs
* ``duration_ms`` and ``outcome`` (``ok`` or the exception class name)

Arguments are bound against the wrapped function's signature, so
fingerprint fields may be passed positionally or by keyword.  The
decorator never mutates arguments or swallows exceptions.
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, TypeVar

F = TypeVar("F", bound=Callable[..., Any])

TRACE_MESSAGE = "STATEMENT_ENGINE_TRACE"

_logger = logging.getLogger("statement_kernel.engines.tracer")


def _canonical(value: Any) -> str:
    """Order-insensitive for mappings and sets, order-sensitive for sequences."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Mapping):
        pairs = sorted((str(k), _canonical(v)) for k, v in value.items())
        return "{" + ",".join(f"{k}:{v}" for k, v in pairs) + "}"
    if isinstance(value, (set, frozenset)):
        return "[" + ",".join(sorted(_canonical(v) for v in value)) + "]"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonical(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """16-hex-char digest of ``field=value`` pairs; absent fields hash as null."""
    canonical = "|".join(f"{name}={_canonical(arguments.get(name))}" for name in fingerprint_fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable[[F], F]:
    def decorator(func: F) -> F:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            outcome = "ok"
            started = time.perf_counter()
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                outcome = type(exc).__name__
                raise
            finally:
                _logger.info(
                    TRACE_MESSAGE,
                    extra={
                        "trace_type": TRACE_MESSAGE,
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": fingerprint,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                        "outcome": outcome,
                        "function": func.__qualname__,
                    },
                )

        return wrapper  # type: ignore[return-value]

    return decorator
