"""Ordered "first success wins" evaluation shared by every fallback chain."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Step = Tuple[str, Callable[[], Optional[T]]]


@dataclass(frozen=True)
class CascadeHit(Generic[T]):
    """Result of a cascade: the name of the step that produced ``value``."""

    step: str
    value: T


def _truthy(value: object) -> bool:
    return bool(value)


def first_success(
    steps: Iterable[Step],
    *,
    accept: Callable[[object], bool] = _truthy,
    label: str = "cascade",
) -> Optional[CascadeHit]:
    """Run ``steps`` in order and return the first accepted result.

    Each step is a ``(name, handler)`` pair. Handlers are evaluated lazily, so
    later steps never run once an earlier one succeeds. A handler that raises is
    logged and treated as a failed step; the cascade moves on to the next one.
    """

    for name, handler in steps:
        try:
            value = handler()
        except Exception as exc:  # noqa: BLE001 - a failing step never aborts the cascade
            logger.warning("%s step %r failed: %s", label, name, exc)
            continue
        if accept(value):
            logger.debug("%s resolved by step %r", label, name)
            return CascadeHit(step=name, value=value)
        logger.debug("%s step %r yielded nothing", label, name)
    return None


__all__ = ["CascadeHit", "Step", "first_success"]
