"""Collaborator interfaces for the task executor."""

from __future__ import annotations

import asyncio
from typing import Protocol, TypeVar

from web_bench.bench.errors import BenchError
from web_bench.bench.models import AnalyzerResult, PageInfo, Target

HandleT = TypeVar("HandleT")
HandleT_contra = TypeVar("HandleT_contra", contravariant=True)


class TaskAbandoned(BenchError):
    """Raised by collaborators that notice their task was abandoned."""


class CancellationToken:
    """One-shot signal telling collaborators to stop using the resource."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TaskAbandoned(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()


class TargetProvider(Protocol[HandleT]):
    """Owns the exclusive per-task resource (e.g. a browser page)."""

    async def acquire(self) -> HandleT:
        """Create a fresh resource for one task."""

    async def load(self, handle: HandleT, target: Target, cancel: CancellationToken) -> PageInfo:
        """Bring ``target`` into the resource so analyzers can run."""

    async def release(self, handle: HandleT) -> None:
        """Graceful release on normal exit paths."""

    async def force_release(self, handle: HandleT) -> None:
        """Forced release after the hard deadline."""


class Analyzer(Protocol[HandleT_contra]):
    """One analysis tool. Must be callable repeatedly on the same handle."""

    name: str

    async def analyze(self, handle: HandleT_contra, cancel: CancellationToken) -> AnalyzerResult:
        """Run the tool against a loaded target."""
