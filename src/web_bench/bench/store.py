"""Append-only JSONL result store."""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import IO

from web_bench.bench.errors import FatalSetupError, RecordSchemaError, StoreWriteError
from web_bench.bench.models import AuditResult
from web_bench.bench.records import record_to_result, result_to_record

logger = logging.getLogger(__name__)


class JsonlResultStore:
    """Writes one record per line; every append is flushed and fsynced."""

    def __init__(self, path: Path, *, append: bool = False) -> None:
        self.path = path
        self.append_mode = append
        self._handle: IO[str] | None = None
        self._closed = False
        self._lock = threading.Lock()
        self.written = 0

    def open(self) -> JsonlResultStore:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("a" if self.append_mode else "w", encoding="utf-8")
        except OSError as error:
            raise FatalSetupError(f"Cannot open result store {self.path}: {error}") from error
        logger.info("Writing results to %s", self.path)
        return self

    def append(self, result: AuditResult) -> None:
        """Durably write one result before returning."""

        line = json.dumps(result_to_record(result), ensure_ascii=False) + "\n"
        with self._lock:
            if self._handle is None or self._closed:
                raise StoreWriteError(f"Result store {self.path} is not open")
            try:
                self._handle.write(line)
                self._handle.flush()
                os.fsync(self._handle.fileno())
            except OSError as error:
                raise StoreWriteError(f"Cannot write to {self.path}: {error}") from error
            self.written += 1

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._handle is not None:
                try:
                    self._handle.flush()
                    os.fsync(self._handle.fileno())
                finally:
                    self._handle.close()
                    self._handle = None

    def __enter__(self) -> JsonlResultStore:
        return self.open()

    def __exit__(self, *_: object) -> None:
        self.close()


def read_results(paths: Iterable[Path]) -> list[AuditResult]:
    """Load results from one or more JSONL files (e.g. all shards of a run)."""

    results: list[AuditResult] = []
    for path in paths:
        with path.open(encoding="utf-8") as handle:
            for line_no, line in enumerate(handle, start=1):
                if not line.strip():
                    continue
                try:
                    results.append(record_to_result(json.loads(line)))
                except json.JSONDecodeError as error:
                    raise RecordSchemaError(f"{path}:{line_no}: invalid JSON: {error}") from error
                except RecordSchemaError as error:
                    raise RecordSchemaError(f"{path}:{line_no}: {error}") from error
    return results
