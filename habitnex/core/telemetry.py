"""
Lightweight tracing spans.

Spans are emitted as structured log lines on the ``habitnex.telemetry``
logger; the JSON formatter keeps their attributes as fields.
"""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator

logger = logging.getLogger("habitnex.telemetry")


@contextmanager
def span(name: str, **attributes: Any) -> Iterator[Dict[str, Any]]:
    """Time a block of work and log its outcome.

    Successful spans log at DEBUG, failed spans at WARNING.

    The yielded dict may be updated inside the block to attach attributes
    known only after the work runs (token counts, cache hit, ...).

    Args:
        name: Span name, e.g. ``enhance_habit.ai_call``
        **attributes: Initial span attributes

    Yields:
        Mutable attribute dictionary
    """
    attrs = dict(attributes)
    start = time.perf_counter()
    logger.debug("span start", extra={"span": name, **attrs})
    try:
        yield attrs
    except Exception as exc:
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        logger.warning(
            "span end",
            extra={
                "span": name,
                "status": "error",
                "duration_ms": duration_ms,
                "error": str(exc),
                **attrs,
            },
        )
        raise
    duration_ms = round((time.perf_counter() - start) * 1000, 2)
    logger.debug(
        "span end",
        extra={"span": name, "status": "ok", "duration_ms": duration_ms, **attrs},
    )
