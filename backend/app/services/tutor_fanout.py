# backend/app/services/tutor_fanout.py
"""
Bounded concurrent per-tutor checks.

Each check runs in a worker thread with its own database session, under a
shared semaphore and a per-check timeout. A check that raises or times out
produces a failed result instead of an exception, so one slow or broken
tutor never sinks the whole request. Callers decide what a failure means
(it is never "available").

Cancelling the awaiting task cancels every pending check. Threads that have
already started run to completion and their results are discarded.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

from sqlalchemy.orm import Session

from ..core.config import settings
from ..database import SessionLocal
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

T = TypeVar("T")

SessionFactory = Callable[[], Session]


@dataclass
class TutorCheckResult(Generic[T]):
    """Outcome of one per-tutor check."""

    tutor_id: str
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TutorCheckRunner:
    """
    Runs a per-tutor check for many tutors with bounded parallelism.

    Checks run on a thread pool owned by the runner and sized to the
    concurrency limit. A check that timed out keeps its worker until the
    store answers, so later checks queue behind it and time out in turn
    instead of piling up more threads.
    """

    def __init__(
        self,
        session_factory: Optional[SessionFactory] = None,
        concurrency: Optional[int] = None,
        timeout_s: Optional[float] = None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.concurrency = concurrency or settings.tutor_check_concurrency
        self.timeout_s = timeout_s or settings.tutor_check_timeout_s
        self._executor = ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="tutor-check"
        )

    async def run(
        self,
        operation: str,
        tutor_ids: Sequence[str],
        check: Callable[[Session, str], T],
    ) -> List[TutorCheckResult[T]]:
        """
        Run ``check(session, tutor_id)`` for every tutor.

        Results come back in the order of ``tutor_ids``.
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run_one(tutor_id: str) -> TutorCheckResult[T]:
            async with semaphore:
                try:
                    value = await asyncio.wait_for(
                        self._in_worker(check, tutor_id),
                        timeout=self.timeout_s,
                    )
                except asyncio.TimeoutError:
                    logger.warning(
                        "Tutor check timed out",
                        extra={
                            "operation": operation,
                            "tutor_id": tutor_id,
                            "timeout_s": self.timeout_s,
                        },
                    )
                    prometheus_metrics.record_tutor_check(operation, "timeout")
                    return TutorCheckResult(tutor_id=tutor_id, error="timeout")
                except Exception as exc:
                    logger.warning(
                        "Tutor check failed",
                        extra={"operation": operation, "tutor_id": tutor_id, "error": str(exc)},
                        exc_info=True,
                    )
                    prometheus_metrics.record_tutor_check(operation, "error")
                    return TutorCheckResult(tutor_id=tutor_id, error=str(exc) or type(exc).__name__)
            prometheus_metrics.record_tutor_check(operation, "ok")
            return TutorCheckResult(tutor_id=tutor_id, value=value)

        return list(await asyncio.gather(*(run_one(tutor_id) for tutor_id in tutor_ids)))

    async def run_sync(self, func: Callable[[Session], T]) -> T:
        """Run a single blocking query in a worker thread. Exceptions propagate."""
        return await asyncio.to_thread(self._call_with_session, lambda db, _: func(db), "")

    def shutdown(self) -> None:
        """Stop accepting checks; queued ones are dropped, running ones finish."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def _in_worker(self, check: Callable[[Session, str], T], tutor_id: str) -> "asyncio.Future[T]":
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, self._call_with_session, check, tutor_id)

    def _call_with_session(self, check: Callable[[Session, str], T], tutor_id: str) -> T:
        db = self.session_factory()
        try:
            return check(db, tutor_id)
        finally:
            db.close()
