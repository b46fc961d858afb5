from __future__ import annotations

import asyncio
import heapq

import pytest

from oqta_client.client.control.http_api import DriveApiError
from oqta_client.client.control.search import SearchDebouncer
from oqta_client.protocol import SearchResult


async def _settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeClock:
    """Virtual time for ``sleep``-injected components."""

    def __init__(self) -> None:
        self.now = 0.0
        self._sleepers = []
        self._seq = 0

    async def sleep(self, delay: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self.now + delay, self._seq, fut))
        self._seq += 1
        await fut

    async def advance_to(self, when: float) -> None:
        await _settle()
        while self._sleepers and self._sleepers[0][0] <= when + 1e-9:
            deadline, _, fut = heapq.heappop(self._sleepers)
            self.now = max(self.now, deadline)
            if not fut.done():
                fut.set_result(None)
            await _settle()
        self.now = max(self.now, when)


def _debouncer(clock: FakeClock, calls: list, results: list, **kwargs) -> SearchDebouncer:
    async def search(term: str) -> SearchResult:
        calls.append((clock.now, term))
        return SearchResult(total=1, hits=(f"{term}.mdr",))

    return SearchDebouncer(
        search,
        lambda term, result: results.append((term, result)),
        sleep=clock.sleep,
        **kwargs,
    )


def test_burst_of_keystrokes_yields_single_request() -> None:
    async def scenario():
        clock = FakeClock()
        calls: list = []
        results: list = []
        debouncer = _debouncer(clock, calls, results, delay_s=0.6)

        debouncer.keystroke("ma")
        await clock.advance_to(0.1)
        debouncer.keystroke("man")
        await clock.advance_to(0.2)
        debouncer.keystroke("mani")
        await clock.advance_to(0.7)
        debouncer.keystroke("manic")
        await clock.advance_to(1.29)
        assert calls == []
        await clock.advance_to(2.5)
        await debouncer.aclose()
        return calls, results

    calls, results = asyncio.run(scenario())
    assert len(calls) == 1
    when, term = calls[0]
    assert term == "manic"
    assert when == pytest.approx(1.3)
    assert results == [("manic", SearchResult(total=1, hits=("manic.mdr",)))]


def test_short_queries_are_suppressed() -> None:
    async def scenario():
        clock = FakeClock()
        calls: list = []
        debouncer = _debouncer(clock, calls, [], delay_s=0.6, min_chars=2)
        debouncer.keystroke("m")
        await clock.advance_to(1.0)
        task = debouncer.search_now("x")
        await task
        await debouncer.aclose()
        return calls, debouncer.pending

    calls, pending = asyncio.run(scenario())
    assert calls == []
    assert pending == 0


def test_search_now_skips_the_quiet_period() -> None:
    async def scenario():
        clock = FakeClock()
        calls: list = []
        results: list = []
        debouncer = _debouncer(clock, calls, results)
        await debouncer.search_now("jetpac")
        await debouncer.aclose()
        return calls, results

    calls, results = asyncio.run(scenario())
    assert calls == [(0.0, "jetpac")]
    assert results[0][0] == "jetpac"


def test_stale_results_are_dropped() -> None:
    async def scenario():
        release_first = asyncio.Event()
        results: list = []

        async def search(term: str) -> SearchResult:
            if term == "first":
                await release_first.wait()
            return SearchResult(total=1, hits=(term,))

        debouncer = SearchDebouncer(search, lambda term, result: results.append(term))
        first = debouncer.search_now("first")
        second = debouncer.search_now("second")
        await second
        release_first.set()
        await first
        return results

    assert asyncio.run(scenario()) == ["second"]


def test_search_failure_is_logged_not_raised(caplog) -> None:
    async def search(term: str) -> SearchResult:
        raise DriveApiError("GET", "/search", 500, "Internal Server Error")

    async def scenario():
        results: list = []
        debouncer = SearchDebouncer(search, lambda term, result: results.append(term))
        await debouncer.search_now("zx81")
        return results

    with caplog.at_level("INFO"):
        assert asyncio.run(scenario()) == []
    assert "Search for 'zx81' failed" in caplog.text
