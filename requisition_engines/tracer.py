"""
requisition_engines.tracer -- REQUISITION_ENGINE_TRACE emission for engine calls.

Responsibility:
    ``@traced_engine`` wraps a pure engine function and emits one
    structured log record per call: engine name and version, a short
    fingerprint of selected arguments, the duration, and whether the call
    raised.

Architecture position:
    Engines -- support code.  Emits a log record only; no I/O of its own.
    Logs under ``requisition_kernel.engines.tracer`` through the stdlib
    logger so engines need not import the kernel logging module.

Invariants enforced:
    - The fingerprint depends only on the named arguments' values; dict
      keys are sorted and dataclasses are rendered field by field.
    - Arguments are bound against the function signature, so positional
      and keyword calls fingerprint identically.

Failure modes:
    - Fingerprint fields that are not parameters of the function are
      recorded as "null".
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

_logger = logging.getLogger("requisition_kernel.engines.tracer")


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (bool, int, float, str)):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = dataclasses.fields(value)
        return (
            type(value).__name__
            + "("
            + ",".join(f"{f.name}={_canonicalize(getattr(value, f.name))}" for f in fields)
            + ")"
        )
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if isinstance(value, (set, frozenset)):
        return "{" + ",".join(sorted(_canonicalize(v) for v in value)) + "}"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: dict[str, Any],
) -> str:
    """16 hex chars of SHA-256 over ``field=value`` pairs in field order."""
    canonical = "|".join(
        f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator emitting REQUISITION_ENGINE_TRACE around an engine call."""

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                bound = signature.bind_partial(*args, **kwargs)
                fp = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            t0 = time.monotonic()
            failed = True
            try:
                result = func(*args, **kwargs)
                failed = False
                return result
            finally:
                _logger.info(
                    "REQUISITION_ENGINE_TRACE",
                    extra={
                        "trace_type": "REQUISITION_ENGINE_TRACE",
                        "engine_name": engine_name,
                        "engine_version": engine_version,
                        "input_fingerprint": fp,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        "function": func.__qualname__,
                        "failed": failed,
                    },
                )

        return wrapper

    return decorator
