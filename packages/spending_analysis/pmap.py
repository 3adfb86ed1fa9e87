"""Bounded fan-out over a thread pool, in the spirit of JavaScript's ``p-map``.

- ``p_map(items, fn, concurrency=...)`` runs ``fn`` over ``items`` with at
  most ``concurrency`` calls in flight and returns results in input order.
- A mapper may return ``p_map_skip`` to drop its item from the output.
- ``partition(seq, size)`` slices a sequence into consecutive batches; the
  pipeline uses it to size cache writes.

Errors fail fast by default: the first exception propagates and pending work
is cancelled. With ``stop_on_error=False`` every item runs and failures are
raised together as an ``ExceptionGroup``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class _Skip:
    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return "p_map_skip"


p_map_skip: object = _Skip()


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT | object],
    *,
    concurrency: int,
    stop_on_error: bool = True,
) -> list[OutT]:
    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    source = enumerate(iterable)
    slots: dict[int, OutT | object] = {}
    failures: list[Exception] = []
    pending: dict[Future[OutT | object], int] = {}

    with ThreadPoolExecutor(max_workers=concurrency) as pool:

        def fill() -> None:
            # Keep at most ``concurrency`` futures outstanding; the iterable is
            # consumed lazily so generators of any length are fine.
            while len(pending) < concurrency:
                nxt = next(source, None)
                if nxt is None:
                    return
                idx, item = nxt
                pending[pool.submit(mapper, item)] = idx

        fill()
        while pending:
            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for fut in done:
                idx = pending.pop(fut)
                try:
                    slots[idx] = fut.result()
                except Exception as e:  # noqa: BLE001
                    if stop_on_error:
                        pool.shutdown(wait=False, cancel_futures=True)
                        raise
                    failures.append(e)
            fill()

    if failures:
        raise ExceptionGroup("p_map: one or more mapper calls failed", failures)

    return [v for _, v in sorted(slots.items()) if v is not p_map_skip]  # type: ignore[misc]


def partition(seq: Sequence[InT], size: int) -> Iterator[Sequence[InT]]:
    """Yield consecutive slices of ``seq`` holding at most ``size`` items."""

    if size < 1:
        raise ValueError("size must be a positive integer")
    for start in range(0, len(seq), size):
        yield seq[start : start + size]


__all__ = ["p_map", "p_map_skip", "partition"]
