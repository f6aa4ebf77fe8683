"""Pipeline orchestration: screenshots -> problem -> solution, and the debug pass.

Flow (initial):
- acquire the adapter snapshot once; it is kept for the whole pipeline
- read the current queue, extract, solve, report progress 20/40/60/100
Flow (debug):
- current + extra queue, debug against the stored problem, progress 30/60/100

Every pipeline ends with exactly one terminal event and returns a
PipelineResult; failures and user cancellation never raise into the caller.
"""
from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from . import stages
from .config import ConfigStore
from .errors import (
    CanceledError,
    ConfigurationError,
    ProviderError,
    ProviderErrorKind,
    SnapSolveError,
    StageError,
)
from .factory import AdapterHandle
from .images import load_images
from .logging_util import get_logger, log_step
from .state import AppState, Phase
from .types import FailureKind, PipelineEvent, PipelineResult, ProcessingEvent, ProgressUpdate

logger = get_logger(__name__)

PROVIDER_NOT_READY_MESSAGE = "Model provider not initialized or API key invalid. Please check your settings."
INVALID_KEY_MESSAGE = "Invalid API key. Please check your settings."
RATE_LIMIT_MESSAGE = "API rate limit exceeded or insufficient credits. Please try again later."
SERVER_ERROR_MESSAGE = "Server error. Please try again later."
TIMEOUT_MESSAGE = "The model provider did not respond in time. Please try again."
CANCELED_MESSAGE = "Processing was canceled by the user."
DEBUG_CANCELED_MESSAGE = "Extra processing was canceled by the user."
NO_SCREENSHOTS_MESSAGE = "No screenshots to process."
NO_PROBLEM_MESSAGE = "No problem info available"
BUSY_MESSAGE = "Processing is already in progress."
INITIAL_FAILED_MESSAGE = "Failed to process screenshots. Please try again."
DEBUG_FAILED_MESSAGE = "Failed to process debug request"

class ScreenshotQueue(Protocol):
    def current(self) -> Sequence[str]: ...

    def extra(self) -> Sequence[str]: ...

class ListScreenshotQueue:
    """In-memory queue of screenshot file paths."""

    def __init__(self, current: Optional[Sequence[str]] = None, extra: Optional[Sequence[str]] = None):
        self._current: List[str] = list(current or [])
        self._extra: List[str] = list(extra or [])

    def current(self) -> List[str]:
        return list(self._current)

    def extra(self) -> List[str]:
        return list(self._extra)

class CancelToken:
    """Cancellation handle for one in-flight pipeline.

    cancel() runs the registered abort callbacks, which cut off HTTP requests
    running in worker threads, then cancels the bound task so the pipeline
    stops at its current await.
    """

    def __init__(self):
        self._canceled = False
        self._task: Optional[asyncio.Future] = None
        self._callbacks: List[Callable[[], object]] = []

    @property
    def canceled(self) -> bool:
        return self._canceled

    def bind(self, task: asyncio.Future) -> None:
        self._task = task
        if self._canceled:
            task.cancel()

    def on_cancel(self, callback: Callable[[], object]) -> None:
        if self._canceled:
            callback()
            return
        self._callbacks.append(callback)

    def cancel(self) -> None:
        self._canceled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("cancel callback failed")
        if self._task is not None and not self._task.done():
            self._task.cancel()

def describe_failure(exc: BaseException, default_message: str) -> Tuple[FailureKind, str]:
    """Failure kind + user-facing message. Never a stack trace."""
    if isinstance(exc, CanceledError):
        return FailureKind.CANCELED, str(exc) or CANCELED_MESSAGE
    if isinstance(exc, ConfigurationError):
        return FailureKind.INVALID_CREDENTIAL, PROVIDER_NOT_READY_MESSAGE

    if isinstance(exc, ProviderError):
        if exc.kind is ProviderErrorKind.NOT_INITIALIZED:
            return FailureKind.INVALID_CREDENTIAL, PROVIDER_NOT_READY_MESSAGE
        if exc.kind is ProviderErrorKind.INVALID_CREDENTIAL:
            return FailureKind.INVALID_CREDENTIAL, INVALID_KEY_MESSAGE
        if exc.kind is ProviderErrorKind.RATE_LIMITED:
            return FailureKind.RATE_LIMITED, RATE_LIMIT_MESSAGE
        if exc.kind is ProviderErrorKind.MODEL_NOT_FOUND:
            return FailureKind.ERROR, str(exc)
        if exc.kind is ProviderErrorKind.TIMEOUT:
            return FailureKind.ERROR, TIMEOUT_MESSAGE
        if exc.status_code is not None and exc.status_code >= 500:
            return FailureKind.ERROR, SERVER_ERROR_MESSAGE
        return FailureKind.ERROR, default_message

    if isinstance(exc, StageError):
        return FailureKind.ERROR, str(exc) or default_message
    return FailureKind.ERROR, default_message

ProgressCallback = Callable[[ProgressUpdate], None]
EventCallback = Callable[[PipelineEvent], None]

class Processor:
    def __init__(
        self,
        store: ConfigStore,
        queue: ScreenshotQueue,
        adapters: Optional[AdapterHandle] = None,
        state: Optional[AppState] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_event: Optional[EventCallback] = None,
    ):
        self.store = store
        self.queue = queue
        self.adapters = adapters or AdapterHandle(store)
        self.state = state or AppState()
        self.on_progress = on_progress
        self.on_event = on_event
        self._initial_token: Optional[CancelToken] = None
        self._debug_token: Optional[CancelToken] = None

    # ------------------------------------------------------------------
    # callbacks
    # ------------------------------------------------------------------
    def _emit(self, event: PipelineEvent) -> None:
        log_step(logger, "event", event.type.value + (f" ({event.message})" if event.message else ""))
        if self.on_event is None:
            return
        try:
            self.on_event(event)
        except Exception:
            logger.exception("event listener failed for %s", event.type.value)

    def _progress(self, message: str, progress: int) -> None:
        log_step(logger, f"progress {progress}%", message)
        if self.on_progress is None:
            return
        try:
            self.on_progress(ProgressUpdate(message=message, progress=progress))
        except Exception:
            logger.exception("progress listener failed")

    def _fail(self, event_type: ProcessingEvent, exc: BaseException, default_message: str) -> PipelineResult:
        kind, message = describe_failure(exc, default_message)
        if kind is FailureKind.INVALID_CREDENTIAL:
            event_type = ProcessingEvent.API_KEY_INVALID
        logger.error("%s: %r", event_type.value, exc)
        self._emit(PipelineEvent(type=event_type, failure=kind, message=message))
        return PipelineResult(ok=False, failure=kind, message=message)

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------
    @property
    def busy(self) -> bool:
        return self._initial_token is not None or self._debug_token is not None

    async def _acquire_adapter(self):
        snap = self.adapters.snapshot()
        if snap.version == 0:
            snap = await asyncio.to_thread(self.adapters.start)
        elif not snap.ready:
            snap = await asyncio.to_thread(self.adapters.refresh)

        if not snap.ready:
            raise ConfigurationError(PROVIDER_NOT_READY_MESSAGE)
        log_step(logger, "adapter", f"using {snap.provider} (v{snap.version})")
        return snap.adapter

    async def _run_cancellable(self, token: CancelToken, coro, on_cancel: Callable[[], PipelineResult]) -> PipelineResult:
        task = asyncio.ensure_future(coro)
        token.bind(task)
        try:
            return await task
        except asyncio.CancelledError:
            if not token.canceled:
                raise
            return on_cancel()

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    async def process_screenshots(self) -> PipelineResult:
        """Initial pipeline until a problem is solved, debug pipeline afterwards."""
        if self.state.phase in (Phase.SOLVED, Phase.DEBUGGING):
            return await self.run_debug()
        return await self.run_initial()

    async def run_initial(self) -> PipelineResult:
        if self.busy or self.state.phase in (Phase.EXTRACTING, Phase.DEBUGGING):
            log_step(logger, "initial", "rejected, another pipeline is running")
            return PipelineResult(ok=False, failure=FailureKind.ERROR, message=BUSY_MESSAGE)
        if self.state.phase is Phase.SOLVED:
            self.state.reset()

        token = CancelToken()
        self._initial_token = token
        try:
            return await self._run_cancellable(token, self._initial_pipeline(token), self._initial_canceled)
        finally:
            self._initial_token = None

    async def run_debug(self) -> PipelineResult:
        if self.busy or self.state.phase in (Phase.EXTRACTING, Phase.DEBUGGING):
            log_step(logger, "debug", "rejected, another pipeline is running")
            return PipelineResult(ok=False, failure=FailureKind.ERROR, message=BUSY_MESSAGE)

        token = CancelToken()
        self._debug_token = token
        try:
            return await self._run_cancellable(token, self._debug_pipeline(token), self._debug_canceled)
        finally:
            self._debug_token = None

    def cancel_ongoing_requests(self) -> bool:
        """Abort in-flight pipelines and drop the stored problem. True if anything was running."""
        was_canceled = False
        for token in (self._initial_token, self._debug_token):
            if token is not None and not token.canceled:
                token.cancel()
                was_canceled = True

        self.state.reset()
        if was_canceled:
            log_step(logger, "cancel", "in-flight processing canceled")
        return was_canceled

    def reset(self) -> None:
        self.cancel_ongoing_requests()
        log_step(logger, "reset", "state cleared")

    def close(self) -> None:
        self.adapters.close()

    # ------------------------------------------------------------------
    # pipelines
    # ------------------------------------------------------------------
    async def _initial_pipeline(self, token: CancelToken) -> PipelineResult:
        config = self.store.load()
        language = config.language or "python"

        try:
            adapter = await self._acquire_adapter()
        except ConfigurationError as e:
            return self._fail(ProcessingEvent.INITIAL_SOLUTION_ERROR, e, PROVIDER_NOT_READY_MESSAGE)
        token.on_cancel(adapter.abort)

        self._emit(PipelineEvent(type=ProcessingEvent.INITIAL_START))
        paths = list(self.queue.current())
        if not paths:
            self._emit(PipelineEvent(type=ProcessingEvent.NO_SCREENSHOTS, failure=FailureKind.ERROR, message=NO_SCREENSHOTS_MESSAGE))
            return PipelineResult(ok=False, failure=FailureKind.ERROR, message=NO_SCREENSHOTS_MESSAGE)

        self.state.transition(Phase.EXTRACTING)
        log_step(logger, "initial", f"processing {len(paths)} screenshot(s), language={language}")
        try:
            images = await load_images(paths)
            self._progress("Analyzing problem from screenshots...", 20)
            problem = await stages.extract(images, language, adapter, config.extraction_model)
            self.state.problem_info = problem
            self._progress("Problem analyzed successfully. Preparing to generate solution...", 40)
            self._emit(PipelineEvent(type=ProcessingEvent.PROBLEM_EXTRACTED, payload=problem))

            self._progress("Creating optimal solution with detailed explanations...", 60)
            solution = await stages.solve(problem, language, adapter, config.solution_model)
            self._progress("Solution generated successfully", 100)
        except (SnapSolveError, OSError) as e:
            self.state.reset()
            return self._fail(ProcessingEvent.INITIAL_SOLUTION_ERROR, e, INITIAL_FAILED_MESSAGE)
        except Exception:
            logger.exception("unexpected error in initial pipeline")
            self.state.reset()
            raise

        self.state.solution = solution
        self.state.transition(Phase.SOLVED)
        self._emit(PipelineEvent(type=ProcessingEvent.SOLUTION_SUCCESS, payload=solution))
        return PipelineResult(ok=True, data=solution)

    async def _debug_pipeline(self, token: CancelToken) -> PipelineResult:
        problem = self.state.problem_info
        if problem is None:
            return self._fail(ProcessingEvent.DEBUG_ERROR, StageError(NO_PROBLEM_MESSAGE), NO_PROBLEM_MESSAGE)

        config = self.store.load()
        language = config.language or "python"

        try:
            adapter = await self._acquire_adapter()
        except ConfigurationError as e:
            return self._fail(ProcessingEvent.DEBUG_ERROR, e, PROVIDER_NOT_READY_MESSAGE)
        token.on_cancel(adapter.abort)

        extra = list(self.queue.extra())
        if not extra:
            self._emit(PipelineEvent(type=ProcessingEvent.NO_SCREENSHOTS, failure=FailureKind.ERROR, message=NO_SCREENSHOTS_MESSAGE))
            return PipelineResult(ok=False, failure=FailureKind.ERROR, message=NO_SCREENSHOTS_MESSAGE)

        self._emit(PipelineEvent(type=ProcessingEvent.DEBUG_START))
        self.state.transition(Phase.DEBUGGING)
        paths = list(self.queue.current()) + extra
        log_step(logger, "debug", f"processing {len(paths)} screenshot(s), language={language}")
        try:
            images = await load_images(paths)
            self._progress("Processing debug screenshots...", 30)
            self._progress("Analyzing code and generating debug feedback...", 60)
            result = await stages.debug(problem, images, language, adapter, config.debugging_model)
            self._progress("Debug analysis complete", 100)
        except (SnapSolveError, OSError) as e:
            self.state.transition(Phase.SOLVED)
            return self._fail(ProcessingEvent.DEBUG_ERROR, e, DEBUG_FAILED_MESSAGE)
        except Exception:
            logger.exception("unexpected error in debug pipeline")
            self.state.transition(Phase.SOLVED)
            raise

        self.state.has_debugged = True
        self.state.transition(Phase.SOLVED)
        self._emit(PipelineEvent(type=ProcessingEvent.DEBUG_SUCCESS, payload=result))
        return PipelineResult(ok=True, data=result)

    def _initial_canceled(self) -> PipelineResult:
        self.state.reset()
        return self._fail(ProcessingEvent.INITIAL_SOLUTION_ERROR, CanceledError(CANCELED_MESSAGE), CANCELED_MESSAGE)

    def _debug_canceled(self) -> PipelineResult:
        self.state.reset()
        return self._fail(ProcessingEvent.DEBUG_ERROR, CanceledError(DEBUG_CANCELED_MESSAGE), DEBUG_CANCELED_MESSAGE)
