"""Per-target task execution with soft timeout, hard deadline and tool isolation.

Both deadlines race the guarded work in a separate asyncio task instead of
``asyncio.wait_for``: ``wait_for`` waits for the cancelled work to unwind,
which never happens when a driver call ignores cancellation. Abandoned tasks
are cancelled and left to finish on their own; their results are dropped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from web_bench.bench.contracts import (
    Analyzer,
    CancellationToken,
    HandleT,
    TargetProvider,
    TaskAbandoned,
)
from web_bench.bench.errors import (
    HARD_TIMEOUT_MESSAGE,
    SOFT_TIMEOUT_MESSAGE,
    TaskHardDeadlineExceeded,
    TaskSoftTimeout,
)
from web_bench.bench.failure_classifier import classify_task_error
from web_bench.bench.models import (
    AnalyzerResult,
    AuditResult,
    AuditStatus,
    PageInfo,
    Target,
    ToolOutcome,
    ToolStatus,
    build_category_detail,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ERROR_CHARS = 500
NOT_RUN_MESSAGE = "not run"


class TaskPhase(str, Enum):
    """Lifecycle of one target task."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    SOFT_TIMED_OUT = "soft_timed_out"
    HARD_KILLED = "hard_killed"


@dataclass(slots=True)
class ExecutorTimeouts:
    """Timeout policy derived from the per-target timeout."""

    timeout_seconds: float
    soft_timeout_ratio: float = 0.8
    hard_deadline_multiplier: float = 2.0
    release_timeout_seconds: float = 5.0

    def __post_init__(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if not 0 < self.soft_timeout_ratio <= 1:
            raise ValueError("soft_timeout_ratio must be in (0, 1]")
        if self.hard_deadline_multiplier < 1:
            raise ValueError("hard_deadline_multiplier must be >= 1")
        if self.release_timeout_seconds <= 0:
            raise ValueError("release_timeout_seconds must be > 0")

    @property
    def soft_seconds(self) -> float:
        return self.timeout_seconds * self.soft_timeout_ratio

    @property
    def hard_seconds(self) -> float:
        return self.timeout_seconds * self.hard_deadline_multiplier


@dataclass(slots=True)
class _TaskState(Generic[HandleT]):
    target: Target
    cancel: CancellationToken
    phase: TaskPhase = TaskPhase.PENDING
    handle: HandleT | None = None
    released: bool = False
    force_released: bool = False


@dataclass(slots=True)
class _AnalysisOutcome:
    page_info: PageInfo
    raw: dict[str, AnalyzerResult | None]
    tools: dict[str, ToolOutcome]


class TaskExecutor(Generic[HandleT]):
    """Audits one target with every configured analyzer."""

    def __init__(
        self,
        *,
        provider: TargetProvider[HandleT],
        analyzers: Sequence[Analyzer[HandleT]],
        timeouts: ExecutorTimeouts,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        names = [analyzer.name for analyzer in analyzers]
        if not names:
            raise ValueError("At least one analyzer is required.")
        if len(set(names)) != len(names):
            raise ValueError(f"Analyzer names must be unique: {names}")
        self.provider = provider
        self.analyzers = tuple(analyzers)
        self.timeouts = timeouts
        self._now = now or (lambda: datetime.now(UTC))

    @property
    def tool_names(self) -> tuple[str, ...]:
        return tuple(analyzer.name for analyzer in self.analyzers)

    async def execute(self, target: Target) -> AuditResult:
        """Run one target to completion; never raises for per-target failures."""

        state: _TaskState[HandleT] = _TaskState(target=target, cancel=CancellationToken())
        state.phase = TaskPhase.RUNNING
        body = asyncio.create_task(self._run_body(state), name=f"audit:{target.origin}")
        try:
            done, _ = await asyncio.wait({body}, timeout=self.timeouts.hard_seconds)
        except asyncio.CancelledError:
            state.cancel.cancel("executor cancelled")
            _abandon(body)
            raise

        # Decided in one loop step: a body that completed wins over the deadline.
        if body in done:
            return body.result()

        state.phase = TaskPhase.HARD_KILLED
        state.cancel.cancel(HARD_TIMEOUT_MESSAGE)
        _abandon(body)
        logger.warning(
            "Hard deadline (%.1fs) exceeded for %s; forcing release",
            self.timeouts.hard_seconds,
            target.origin,
        )
        await self._force_release(state)
        return self._error_result(target, TaskHardDeadlineExceeded())

    async def _run_body(self, state: _TaskState[HandleT]) -> AuditResult:
        target = state.target
        try:
            state.handle = await self.provider.acquire()
        except Exception as error:  # noqa: BLE001
            logger.warning("Could not acquire resource for %s: %s", target.origin, error)
            return self._error_result(target, error)

        try:
            finished, outcome = await _race(self._analyze(state), self.timeouts.soft_seconds)
            if not finished or outcome is None:
                state.phase = TaskPhase.SOFT_TIMED_OUT
                state.cancel.cancel(SOFT_TIMEOUT_MESSAGE)
                logger.info(
                    "Soft timeout (%.1fs) for %s",
                    self.timeouts.soft_seconds,
                    target.origin,
                )
                return self._error_result(target, TaskSoftTimeout())
            state.phase = TaskPhase.COMPLETED
            return self._ok_result(target, outcome)
        except Exception as error:  # noqa: BLE001
            logger.info("Audit of %s failed: %s", target.origin, _error_message(error))
            return self._error_result(target, error)
        finally:
            await self._release(state)

    async def _analyze(self, state: _TaskState[HandleT]) -> _AnalysisOutcome:
        handle = state.handle
        if handle is None:
            raise RuntimeError("Resource must be acquired before analysis.")
        page_info = await self.provider.load(handle, state.target, state.cancel)

        raw: dict[str, AnalyzerResult | None] = {}
        tools: dict[str, ToolOutcome] = {}
        for analyzer in self.analyzers:
            state.cancel.raise_if_cancelled()
            try:
                result = await analyzer.analyze(handle, state.cancel)
            except TaskAbandoned:
                raise
            except Exception as error:  # noqa: BLE001
                message = _error_message(error)
                logger.warning(
                    "Tool %s failed on %s: %s",
                    analyzer.name,
                    state.target.origin,
                    message,
                )
                raw[analyzer.name] = None
                tools[analyzer.name] = ToolOutcome.failed(message)
                continue
            raw[analyzer.name] = result
            tools[analyzer.name] = ToolOutcome(
                time_ms=result.time_ms,
                status=ToolStatus.OK,
                categories_found=result.categories_found,
                finding_count=result.finding_count,
            )
        return _AnalysisOutcome(page_info=page_info, raw=raw, tools=tools)

    async def _release(self, state: _TaskState[HandleT]) -> None:
        if state.handle is None:
            return
        if state.phase == TaskPhase.HARD_KILLED:
            # The handle may have arrived after the deadline path ran.
            await self._force_release(state)
            return
        try:
            finished, _ = await _race(
                self.provider.release(state.handle),
                self.timeouts.release_timeout_seconds,
            )
        except Exception as error:  # noqa: BLE001
            logger.warning("Release failed for %s: %s", state.target.origin, error)
            finished = False
        else:
            if not finished:
                logger.warning(
                    "Release of %s did not finish within %.1fs",
                    state.target.origin,
                    self.timeouts.release_timeout_seconds,
                )
        if finished:
            state.released = True
            return
        await self._force_release(state)

    async def _force_release(self, state: _TaskState[HandleT]) -> None:
        if state.handle is None or state.released or state.force_released:
            return
        state.force_released = True
        try:
            finished, _ = await _race(
                self.provider.force_release(state.handle),
                self.timeouts.release_timeout_seconds,
            )
        except Exception as error:  # noqa: BLE001
            logger.error("Forced release failed for %s: %s", state.target.origin, error)
            return
        if not finished:
            logger.error(
                "Forced release of %s did not finish within %.1fs; abandoning resource",
                state.target.origin,
                self.timeouts.release_timeout_seconds,
            )

    def _ok_result(self, target: Target, outcome: _AnalysisOutcome) -> AuditResult:
        return AuditResult(
            origin=target.origin,
            rank=target.rank,
            status=AuditStatus.OK,
            timestamp=self._timestamp(),
            tools=outcome.tools,
            dom_element_count=outcome.page_info.dom_element_count,
            category_detail=build_category_detail(outcome.raw),
        )

    def _error_result(self, target: Target, error: BaseException) -> AuditResult:
        message = _error_message(error)
        return AuditResult(
            origin=target.origin,
            rank=target.rank,
            status=AuditStatus.ERROR,
            timestamp=self._timestamp(),
            tools={
                name: ToolOutcome(time_ms=0.0, status=ToolStatus.ERROR, error=NOT_RUN_MESSAGE)
                for name in self.tool_names
            },
            error=message,
            error_category=classify_task_error(message).category,
        )

    def _timestamp(self) -> str:
        return self._now().astimezone(UTC).isoformat(timespec="milliseconds")


async def _race(work: Coroutine[Any, Any, T], timeout: float) -> tuple[bool, T | None]:
    """Run ``work`` for at most ``timeout`` seconds without waiting on its unwinding."""

    inner = asyncio.ensure_future(work)
    try:
        done, _ = await asyncio.wait({inner}, timeout=timeout)
    except asyncio.CancelledError:
        _abandon(inner)
        raise
    if inner not in done:
        _abandon(inner)
        return False, None
    return True, inner.result()


def _abandon(task: asyncio.Future[Any]) -> None:
    task.cancel()
    task.add_done_callback(_drain_abandoned)


def _drain_abandoned(task: asyncio.Future[Any]) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug("Abandoned task finished with %s: %s", type(error).__name__, error)


def _error_message(error: BaseException) -> str:
    text = str(error).strip() or type(error).__name__
    first_line = text.splitlines()[0]
    return first_line[:MAX_ERROR_CHARS]
