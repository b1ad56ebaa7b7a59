"""Bounded polling over state the harness does not control.

Every wait follows the same shape: reload the observable state, project it,
stop on a match, otherwise sleep and retry until the deadline computed at call
time. Two shapes are provided:

* :func:`poll_until` stops at the first non-None projection.
* :func:`track_trajectory` additionally records every distinct value seen on
  the way, because an intermediate state can be shorter than the poll interval
  and still has to count as observed.
"""
from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Hashable, Iterable, List, Optional, TypeVar, Union

import anyio

from settlement_validation.errors import ConvergenceTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")
S = TypeVar("S", bound=Hashable)

Refresh = Callable[[], Union[Awaitable[Any], Any]]
MaybeAwaitable = Union[Awaitable[T], T]


async def _call(fn: Callable[[], Any]) -> Any:
    result = fn()
    if inspect.isawaitable(result):
        result = await result
    return result


async def poll_until(
    refresh: Optional[Refresh],
    project: Callable[[], MaybeAwaitable[Optional[T]]],
    *,
    timeout: float,
    interval: float,
    description: str = "state",
) -> T:
    """Refresh and project until the projection is not None.

    Raises:
        ConvergenceTimeoutError: when ``timeout`` seconds pass without a match.
            ``last_seen`` is the last projection, which is always None.

    Errors raised by ``refresh`` or ``project`` propagate unchanged.
    """
    deadline = anyio.current_time() + timeout
    ticks = 0
    while True:
        ticks += 1
        if refresh is not None:
            await _call(refresh)
        result = await _call(project)
        if result is not None:
            logger.debug("%s converged after %d tick(s)", description, ticks)
            return result

        remaining = deadline - anyio.current_time()
        if remaining <= 0:
            raise ConvergenceTimeoutError(
                f"Timed out after {timeout:.1f}s waiting for {description} ({ticks} polls)",
                last_seen=result,
            )
        await anyio.sleep(min(interval, remaining))


@dataclass
class Trajectory(Generic[S]):
    """Distinct states in first-seen order plus the latest observation."""

    states: List[S] = field(default_factory=list)
    last: Optional[S] = None
    ticks: int = 0
    converged: bool = False

    def record(self, state: S) -> None:
        self.last = state
        if state not in self.states:
            self.states.append(state)

    def seen(self, state: S) -> bool:
        return state in self.states

    def as_list(self) -> List[Any]:
        return [getattr(s, "value", s) for s in self.states]


async def track_trajectory(
    refresh: Optional[Refresh],
    observe: Callable[[], MaybeAwaitable[S]],
    until: Callable[[S], bool],
    *,
    timeout: float,
    interval: float,
    initial: Iterable[S] = (),
    description: str = "trajectory",
) -> Trajectory[S]:
    """Record every distinct observed state until ``until(state)`` holds.

    The terminal check and any "was X ever seen" check must be evaluated
    against the returned trajectory, not against a single final snapshot.
    """
    trajectory: Trajectory[S] = Trajectory()
    for state in initial:
        trajectory.record(state)

    deadline = anyio.current_time() + timeout
    while True:
        trajectory.ticks += 1
        if refresh is not None:
            await _call(refresh)
        state = await _call(observe)
        trajectory.record(state)
        if until(state):
            trajectory.converged = True
            logger.debug("%s reached %r via %s", description, state, trajectory.as_list())
            return trajectory

        remaining = deadline - anyio.current_time()
        if remaining <= 0:
            raise ConvergenceTimeoutError(
                f"Timed out after {timeout:.1f}s waiting for {description}; "
                f"last={getattr(state, 'value', state)!r} seen={trajectory.as_list()}",
                last_seen=trajectory,
            )
        await anyio.sleep(min(interval, remaining))
