import asyncio
import threading
import time

import requests

from snapsolve.config import ConfigStore
from snapsolve.errors import CanceledError, ProviderError
from snapsolve.factory import AdapterHandle
from snapsolve.pipeline import (
    BUSY_MESSAGE,
    CANCELED_MESSAGE,
    INVALID_KEY_MESSAGE,
    PROVIDER_NOT_READY_MESSAGE,
    RATE_LIMIT_MESSAGE,
    ListScreenshotQueue,
    Processor,
)
from snapsolve.state import Phase
from snapsolve.types import CodeMarker, FailureKind, ProcessingEvent as E

from conftest import FakeAdapter, FakeResponse

EXTRACTION_REPLY = '{"problem_statement": "Two Sum", "constraints": ["2 <= n"], "example_input": "[2,7], 9", "example_output": "[0,1]"}'
SOLUTION_REPLY = "```python\nprint(1)\n```\nThoughts:\n- hashmap\n\nTime complexity: O(n) because one pass.\nSpace complexity: O(n) because of the map.\n"
DEBUG_REPLY = (
    "----- ISSUES IDENTIFIED -----\nNo issues found in the visible code\n"
    "----- CODE CHANGES -----\nNo code changes required.\n"
    "----- EXPLANATION -----\nCode is correct.\n"
    "----- KEY POINTS -----\n• Good job"
)

class GatedAdapter(FakeAdapter):
    """Holds its first call until released (or canceled)."""

    def __init__(self, replies=()):
        super().__init__(replies)
        self.started = None
        self.release = None
        self._blocked = False

    def arm(self):
        # events must be created inside the running loop
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def chat_complete(self, request):
        if not self._blocked:
            self._blocked = True
            self.started.set()
            await self.release.wait()
        return await super().chat_complete(request)

class BlockingAdapter(FakeAdapter):
    """complete() holds its worker thread until abort() is called."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.released = threading.Event()
        self.finished = threading.Event()

    def abort(self):
        self.released.set()
        return 1

    def complete(self, request):
        self.entered.set()
        self.released.wait(30)
        self.finished.set()
        raise CanceledError("aborted")

def _processor(tmp_path, adapter, current=(), extra=()):
    store = ConfigStore(tmp_path / "config.json")
    events, progress = [], []
    processor = Processor(
        store,
        ListScreenshotQueue(current=current, extra=extra),
        adapters=AdapterHandle(store, selector=lambda config: adapter),
        on_progress=lambda u: progress.append(u.progress),
        on_event=events.append,
    )
    return processor, events, progress

def _terminal(events):
    return [e for e in events if e.is_terminal]

def test_initial_then_debug(tmp_path, screenshot):
    adapter = FakeAdapter([EXTRACTION_REPLY, SOLUTION_REPLY, DEBUG_REPLY])
    p, events, progress = _processor(tmp_path, adapter, current=[screenshot("a.png")], extra=[screenshot("b.png")])

    result = asyncio.run(p.process_screenshots())

    assert result.ok
    assert result.data.code == "print(1)"
    assert [e.type for e in events] == [E.INITIAL_START, E.PROBLEM_EXTRACTED, E.SOLUTION_SUCCESS]
    assert events[1].payload.problem_statement == "Two Sum"
    assert progress == [20, 40, 60, 100]
    assert p.state.phase is Phase.SOLVED
    assert adapter.requests[0].model == "gpt-4o"

    events.clear()
    progress.clear()
    debug = asyncio.run(p.process_screenshots())

    assert debug.ok
    assert debug.data.code is CodeMarker.NO_CODE_CHANGES_NEEDED
    assert [e.type for e in events] == [E.DEBUG_START, E.DEBUG_SUCCESS]
    assert progress == [30, 60, 100]
    assert p.state.has_debugged is True
    assert p.state.phase is Phase.SOLVED
    assert len(adapter.requests[2].messages[1].images) == 2

def test_no_screenshots(tmp_path):
    p, events, _ = _processor(tmp_path, FakeAdapter())
    result = asyncio.run(p.run_initial())

    assert not result.ok
    assert [e.type for e in events] == [E.INITIAL_START, E.NO_SCREENSHOTS]
    assert p.state.phase is Phase.IDLE

def test_unconfigured_provider(tmp_path, screenshot):
    p, events, _ = _processor(tmp_path, None, current=[screenshot()])
    result = asyncio.run(p.run_initial())

    assert result.failure is FailureKind.INVALID_CREDENTIAL
    assert result.message == PROVIDER_NOT_READY_MESSAGE
    assert [e.type for e in events] == [E.API_KEY_INVALID]

def test_invalid_key_during_extraction(tmp_path, screenshot):
    adapter = FakeAdapter([ProviderError.from_status(401, "bad key", provider="openai")])
    p, events, _ = _processor(tmp_path, adapter, current=[screenshot()])
    result = asyncio.run(p.run_initial())

    assert result.failure is FailureKind.INVALID_CREDENTIAL
    assert result.message == INVALID_KEY_MESSAGE
    assert [e.type for e in _terminal(events)] == [E.API_KEY_INVALID]
    assert p.state.phase is Phase.IDLE
    assert p.state.problem_info is None

def test_rate_limit_during_solution(tmp_path, screenshot):
    adapter = FakeAdapter([EXTRACTION_REPLY, ProviderError.from_status(429, "")])
    p, events, _ = _processor(tmp_path, adapter, current=[screenshot()])
    result = asyncio.run(p.run_initial())

    assert result.failure is FailureKind.RATE_LIMITED
    assert result.message == RATE_LIMIT_MESSAGE
    terminal = _terminal(events)
    assert len(terminal) == 1 and terminal[0].type is E.INITIAL_SOLUTION_ERROR
    assert p.state.phase is Phase.IDLE

def test_unparseable_extraction(tmp_path, screenshot):
    p, events, _ = _processor(tmp_path, FakeAdapter(["sorry, no idea"]), current=[screenshot()])
    result = asyncio.run(p.run_initial())

    assert result.failure is FailureKind.ERROR
    assert result.message.startswith("Failed to parse problem information")
    assert events[-1].type is E.INITIAL_SOLUTION_ERROR

def test_debug_failure_returns_to_solved(tmp_path, screenshot):
    adapter = FakeAdapter([EXTRACTION_REPLY, SOLUTION_REPLY, ProviderError.from_status(500, "oops")])
    p, events, _ = _processor(tmp_path, adapter, current=[screenshot("a.png")], extra=[screenshot("b.png")])

    asyncio.run(p.run_initial())
    events.clear()
    result = asyncio.run(p.run_debug())

    assert not result.ok
    assert [e.type for e in events] == [E.DEBUG_START, E.DEBUG_ERROR]
    assert p.state.phase is Phase.SOLVED
    assert p.state.problem_info.problem_statement == "Two Sum"
    assert p.state.has_debugged is False

def test_debug_without_problem(tmp_path, screenshot):
    p, events, _ = _processor(tmp_path, FakeAdapter(), current=[screenshot()], extra=[screenshot("b.png")])
    result = asyncio.run(p.run_debug())

    assert not result.ok
    assert [e.type for e in events] == [E.DEBUG_ERROR]

def test_cancel_mid_extraction_then_rerun(tmp_path, screenshot):
    adapter = GatedAdapter([EXTRACTION_REPLY, SOLUTION_REPLY])
    p, events, _ = _processor(tmp_path, adapter, current=[screenshot()])

    async def scenario():
        adapter.arm()
        first = asyncio.ensure_future(p.run_initial())
        await adapter.started.wait()

        busy = await p.run_initial()
        assert p.cancel_ongoing_requests() is True
        canceled = await first
        problem_after_cancel = p.state.problem_info

        rerun = await p.run_initial()
        return busy, canceled, problem_after_cancel, rerun

    busy, canceled, problem_after_cancel, rerun = asyncio.run(scenario())

    assert busy.message == BUSY_MESSAGE
    assert canceled.canceled
    assert canceled.message == CANCELED_MESSAGE
    assert problem_after_cancel is None
    assert rerun.ok
    assert p.state.problem_info.problem_statement == "Two Sum"

    cancel_events = [e for e in events if e.failure is FailureKind.CANCELED]
    assert len(cancel_events) == 1
    assert cancel_events[0].type is E.INITIAL_SOLUTION_ERROR

def test_cancel_without_work_clears_state(tmp_path, screenshot):
    adapter = FakeAdapter([EXTRACTION_REPLY, SOLUTION_REPLY])
    p, _, _ = _processor(tmp_path, adapter, current=[screenshot()])
    asyncio.run(p.run_initial())

    assert p.cancel_ongoing_requests() is False
    assert p.state.phase is Phase.IDLE
    assert p.state.problem_info is None

def test_cancel_aborts_the_request_in_flight(tmp_path, screenshot):
    adapter = BlockingAdapter()
    p, events, _ = _processor(tmp_path, adapter, current=[screenshot()])

    async def scenario():
        run = asyncio.ensure_future(p.run_initial())
        assert await asyncio.to_thread(adapter.entered.wait, 10)
        assert p.cancel_ongoing_requests() is True
        return await run

    started = time.monotonic()
    result = asyncio.run(scenario())

    assert result.canceled
    assert adapter.finished.is_set()
    assert time.monotonic() - started < 10
    assert [e.failure for e in _terminal(events)] == [FailureKind.CANCELED]

def test_config_change_mid_run_keeps_the_captured_adapter(tmp_path, screenshot):
    first = GatedAdapter([EXTRACTION_REPLY, SOLUTION_REPLY])
    second = FakeAdapter([EXTRACTION_REPLY, SOLUTION_REPLY])
    built = iter([first, second])
    store = ConfigStore(tmp_path / "config.json")
    p = Processor(
        store,
        ListScreenshotQueue(current=[screenshot()]),
        adapters=AdapterHandle(store, selector=lambda config: next(built)),
    )

    async def scenario():
        first.arm()
        run = asyncio.ensure_future(p.run_initial())
        await first.started.wait()
        store.update(language="java")
        swapped = p.adapters.snapshot()
        first.release.set()
        return swapped, await run

    swapped, result = asyncio.run(scenario())

    assert swapped.version == 2 and swapped.adapter is second
    assert result.ok
    assert len(first.requests) == 2
    assert second.requests == []

    rerun = asyncio.run(p.run_initial())
    assert rerun.ok
    assert len(second.requests) == 2
    assert "java" in second.requests[0].messages[1].text

def test_malformed_local_server_is_reported_not_raised(tmp_path, screenshot, monkeypatch):
    monkeypatch.setattr(requests, "get", lambda url, timeout=None: FakeResponse(200, [{"name": "llava"}]))
    store = ConfigStore(tmp_path / "config.json")
    store.update(model_provider="ollama")
    events = []
    p = Processor(store, ListScreenshotQueue(current=[screenshot()]), on_event=events.append)

    result = asyncio.run(p.run_initial())

    assert result.failure is FailureKind.INVALID_CREDENTIAL
    assert result.message == PROVIDER_NOT_READY_MESSAGE
    assert [e.type for e in events] == [E.API_KEY_INVALID]
