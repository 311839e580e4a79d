"""Error taxonomy for benchmark runs.

Only ``FatalSetupError`` and ``StoreWriteError`` cross the worker pool
boundary. Everything raised while auditing one target is captured into that
target's ``AuditResult``.
"""

from __future__ import annotations

SOFT_TIMEOUT_MESSAGE = "timeout"
HARD_TIMEOUT_MESSAGE = "hard timeout"


class BenchError(RuntimeError):
    """Base class for benchmark errors."""


class FatalSetupError(BenchError):
    """Run cannot start: population, denylist, store or shard config unusable."""


class StoreWriteError(BenchError):
    """A result could not be durably written; the run must stop."""


class RecordSchemaError(BenchError):
    """A stored record does not match the result schema."""


class TaskSoftTimeout(BenchError):
    """Load and analysis did not finish within the soft timeout."""

    def __init__(self) -> None:
        super().__init__(SOFT_TIMEOUT_MESSAGE)


class TaskHardDeadlineExceeded(BenchError):
    """The whole task, cleanup included, overran the hard deadline."""

    def __init__(self) -> None:
        super().__init__(HARD_TIMEOUT_MESSAGE)


class ToolFailure(BenchError):
    """One analyzer failed inside an otherwise healthy task."""

    def __init__(self, tool: str, message: str) -> None:
        super().__init__(f"{tool}: {message}")
        self.tool = tool
        self.reason = message
