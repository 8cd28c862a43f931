"""Run several logical calls at once and collect every outcome."""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Generic, Literal, NamedTuple, TypeVar

T = TypeVar("T")


class ParallelCall(NamedTuple, Generic[T]):
    """A keyed zero-argument coroutine factory."""

    key: str
    fn: Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class ParallelResult(Generic[T]):
    """Settled outcome of one parallel call."""

    key: str
    status: Literal["fulfilled", "rejected"]
    value: T | None = None
    reason: str | None = None

    @property
    def fulfilled(self) -> bool:
        return self.status == "fulfilled"


def _reason(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


async def run_parallel(
    calls: Iterable[ParallelCall[T] | tuple[str, Callable[[], Awaitable[T]]]],
) -> dict[str, ParallelResult[T]]:
    """
    Run every call concurrently and wait for all of them to settle.

    Never short-circuits on a failure. Results are keyed, not ordered.

    Args:
        calls: (key, thunk) pairs

    Returns:
        Mapping of key to ParallelResult, one entry per call
    """
    call_list = [ParallelCall(*c) for c in calls]
    outcomes = await asyncio.gather(
        *(call.fn() for call in call_list), return_exceptions=True
    )

    results: dict[str, ParallelResult[T]] = {}
    for call, outcome in zip(call_list, outcomes):
        if isinstance(outcome, Exception):
            results[call.key] = ParallelResult(
                call.key, "rejected", reason=_reason(outcome)
            )
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            results[call.key] = ParallelResult(call.key, "fulfilled", value=outcome)
    return results


def get_result(results: dict[str, ParallelResult[T]], key: str, fallback: T) -> T:
    """Fulfilled value for key, or fallback when missing or rejected."""
    result = results.get(key)
    if result is not None and result.fulfilled and result.value is not None:
        return result.value
    return fallback


def rejected(results: dict[str, ParallelResult[T]]) -> list[ParallelResult[T]]:
    """Rejected entries, in call order."""
    return [r for r in results.values() if not r.fulfilled]
