"""Bounded worker pool for per-material and per-texture batch work.

Tasks are fanned out to a ``ThreadPoolExecutor`` and collected back into
input order.  An exception raised by one item is recorded as a
:class:`BatchFailure` and never stops the others.  Cancellation stops
pending work, kills running script rules and raises
:class:`AnalysisCancelledError`.
"""

import logging
import threading
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar

from tqdm import tqdm

from .config import EngineConfig
from .core.errors import AnalysisCancelledError
from .validation.script import ScriptRunner

logger = logging.getLogger("matscope.batch")

T = TypeVar("T")


@dataclass(frozen=True)
class BatchFailure:
    """One item of a batch that raised instead of producing a result."""

    key: str
    error: str
    error_type: str = "Exception"
    index: int = -1

    def to_dict(self) -> dict:
        return {"key": self.key, "error": self.error, "error_type": self.error_type}


@dataclass
class BatchResult(Generic[T]):
    """Per-item results in input order (``None`` for failed items)."""

    results: List[Optional[T]] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def successful(self) -> List[T]:
        failed = {f.index for f in self.failures}
        return [r for i, r in enumerate(self.results) if i not in failed]


class BatchRunner:
    """Run a function over many items with a bounded thread pool."""

    def __init__(self, max_workers: int = 0, cancel_event: Optional[threading.Event] = None,
                 scripts: Optional[ScriptRunner] = None,
                 config: Optional[EngineConfig] = None):
        config = config or EngineConfig()
        if max_workers and max_workers > 0:
            self.max_workers = max_workers
        else:
            self.max_workers = config.resolve_workers()
        self._cancel_event = cancel_event or threading.Event()
        self.scripts = scripts or ScriptRunner(config.scripts.timeout_seconds)

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Request cancellation: pending items are dropped, running scripts killed."""
        logger.info("Batch cancellation requested")
        self._cancel_event.set()
        self.scripts.cancel()

    def _check_cancelled(self, desc: str) -> None:
        if self._cancel_event.is_set():
            self.scripts.cancel()
            raise AnalysisCancelledError(f"{desc} cancelled by user request")

    def _watch_cancel(self, finished: threading.Event) -> None:
        # The event may be set by a caller that never calls cancel().
        while not finished.wait(0.1):
            if self._cancel_event.is_set():
                self.scripts.cancel()
                return

    def map(self, fn: Callable[[Any], T], items: Sequence[Any],
            keys: Optional[Sequence[str]] = None, desc: str = "Processing",
            progress: bool = False) -> BatchResult:
        """Apply ``fn`` to every item and return results in input order."""
        items = list(items)
        keys = list(keys) if keys is not None else [str(i) for i in range(len(items))]
        if len(keys) != len(items):
            raise ValueError("keys must have the same length as items")
        if not items:
            return BatchResult([], [])

        finished = threading.Event()
        watcher = threading.Thread(target=self._watch_cancel, args=(finished,),
                                   name="matscope-cancel-watch", daemon=True)
        watcher.start()
        try:
            if min(self.max_workers, len(items)) <= 1:
                return self._map_sequential(fn, items, keys, desc, progress)
            return self._map_parallel(fn, items, keys, desc, progress)
        except BaseException:
            self.scripts.cancel()
            raise
        finally:
            finished.set()

    @staticmethod
    def _failure(desc: str, key: str, idx: int, exc: BaseException) -> BatchFailure:
        logger.error("[%s] Failed %s: %s", desc, key, exc, exc_info=exc)
        return BatchFailure(key=key, error=str(exc), error_type=type(exc).__name__, index=idx)

    def _map_sequential(self, fn, items, keys, desc, progress) -> BatchResult:
        results: List[Optional[T]] = [None] * len(items)
        failures: List[BatchFailure] = []
        for idx, item in enumerate(tqdm(items, desc=desc, disable=not progress)):
            self._check_cancelled(desc)
            try:
                results[idx] = fn(item)
            except AnalysisCancelledError:
                raise
            except Exception as exc:
                failures.append(self._failure(desc, keys[idx], idx, exc))
        return BatchResult(results, failures)

    def _map_parallel(self, fn, items, keys, desc, progress) -> BatchResult:
        results: List[Optional[T]] = [None] * len(items)
        failures: List[BatchFailure] = []
        workers = min(self.max_workers, len(items))
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="matscope")
        abort_error: Optional[BaseException] = None
        completed = False
        try:
            futures = {executor.submit(fn, item): idx for idx, item in enumerate(items)}
            pending = set(futures)
            with tqdm(total=len(futures), desc=desc, disable=not progress) as pbar:
                while pending:
                    if self._cancel_event.is_set():
                        self.scripts.cancel()
                        abort_error = AnalysisCancelledError(
                            f"{desc} cancelled by user request"
                        )
                        break
                    done, pending = wait(pending, timeout=0.2, return_when=FIRST_COMPLETED)
                    for future in done:
                        idx = futures[future]
                        try:
                            results[idx] = future.result()
                        except AnalysisCancelledError as exc:
                            abort_error = exc
                        except Exception as exc:
                            failures.append(self._failure(desc, keys[idx], idx, exc))
                        pbar.update(1)
                    if abort_error is not None:
                        self.scripts.cancel()
                        break
            completed = abort_error is None
        finally:
            # Cancelled or interrupted runs must not block on running workers.
            executor.shutdown(wait=completed, cancel_futures=not completed)

        if abort_error is not None:
            raise abort_error
        failures.sort(key=lambda f: f.index)
        return BatchResult(results, failures)
