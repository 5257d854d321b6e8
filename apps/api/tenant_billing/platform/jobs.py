from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import TypeVar

from opentelemetry.trace import Status, StatusCode
from sqlalchemy.orm import Session

from tenant_billing.context import reset_job_name, set_job_name
from tenant_billing.metrics import observe_job
from tenant_billing.otel import get_tracer


logger = logging.getLogger("tenant_billing.jobs")
tracer = get_tracer("tenant_billing.jobs")

CandidateT = TypeVar("CandidateT")


def run_batch_job(
    session: Session,
    job_name: str,
    candidates: Iterable[CandidateT],
    process: Callable[[CandidateT], bool],
) -> int:
    """Run ``process`` once per candidate, each in its own transaction.

    ``process`` re-reads the candidate and commits its own change, returning ``False`` when the candidate no
    longer qualifies. A failing candidate is rolled back, logged and skipped. Returns the number of candidates transitioned.
    """

    token = set_job_name(job_name)
    started = time.perf_counter()
    transitioned = 0
    failed = 0
    final_status = "failure"

    with tracer.start_as_current_span(job_name) as job_span:
        logger.info("job.started", extra={"job_name": job_name, "duration_ms": 0.0})
        try:
            for candidate in candidates:
                try:
                    changed = process(candidate)
                    if not changed:
                        session.rollback()
                except Exception as exc:
                    session.rollback()
                    failed += 1
                    job_span.record_exception(exc)
                    logger.exception(
                        "job.candidate_failed",
                        extra={"job_name": job_name, "error": str(exc)[:500]},
                    )
                    continue
                if changed:
                    transitioned += 1
            final_status = "success"
        except Exception as exc:
            job_span.set_status(Status(StatusCode.ERROR, str(exc)))
            raise
        finally:
            duration = time.perf_counter() - started
            job_span.set_attribute("job_name", job_name)
            job_span.set_attribute("transitioned", transitioned)
            job_span.set_attribute("failed", failed)
            observe_job(job_name, final_status, duration, transitioned=transitioned, failed=failed)
            logger.info(
                "job.finished",
                extra={
                    "job_name": job_name,
                    "status": final_status,
                    "transitioned": transitioned,
                    "failed": failed,
                    "duration_ms": round(duration * 1000, 2),
                },
            )
            reset_job_name(token)

    return transitioned
