from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from paperpost.storage.models import JobStage
from paperpost.storage.repo import StorageRepo
from paperpost.utils.logging import clear_log_context, set_log_context

logger = logging.getLogger("paperpost.pipeline")

T = TypeVar("T")

MAX_ERROR_MESSAGE_CHARS = 1_000


class JobRunTracker:
    """Wraps one stage body in a RUNNING -> SUCCEEDED/FAILED job run record."""

    def __init__(
        self,
        *,
        repo: StorageRepo,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repo = repo
        self.clock = clock

    def run_stage(
        self,
        *,
        document_id: str,
        stage: JobStage,
        body: Callable[[], T],
    ) -> T:
        set_log_context(document_id=document_id, stage=stage)
        job_run = self.repo.create_job_run(document_id=document_id, stage=stage)
        started_at = self.clock()
        logger.info("Stage started")

        try:
            result = body()
        except Exception as error:
            duration_ms = self._elapsed_ms(started_at)
            try:
                self.repo.finish_job_run(
                    job_run_id=job_run.job_run_id,
                    status="FAILED",
                    duration_ms=duration_ms,
                    error_message=format_error_message(error),
                )
            except Exception:
                logger.exception("Unable to record failed job run")
            logger.error(
                "Stage failed: %s",
                error.__class__.__name__,
                extra={"duration_ms": duration_ms},
            )
            raise
        finally:
            clear_log_context(keys=("stage", "provider"))

        duration_ms = self._elapsed_ms(started_at)
        self.repo.finish_job_run(
            job_run_id=job_run.job_run_id,
            status="SUCCEEDED",
            duration_ms=duration_ms,
        )
        logger.info(
            "Stage succeeded",
            extra={"duration_ms": duration_ms, "stage": stage},
        )
        return result

    def _elapsed_ms(self, started_at: float) -> int:
        return max(0, int(round((self.clock() - started_at) * 1000)))


def format_error_message(error: BaseException) -> str:
    if isinstance(error, KeyError) and error.args:
        message = str(error.args[0])
    else:
        message = str(error)
    message = message or error.__class__.__name__
    return message[:MAX_ERROR_MESSAGE_CHARS]
