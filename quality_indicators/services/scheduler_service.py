"""
Quality Indicator Engine
Scheduler Service.

Owns the recurring background jobs (currently the activity log retention
purge). Jobs are plain functions registered with ``@register_job``; cron
(through the ``cleanup-activity-logs`` CLI command) or the admin API
triggers them through ``SchedulerService.run_job``, which honors the
job's ``is_enabled`` switch and records every run on its ScheduledJob row.

Jobs run in the caller's app context when there is one (request, CLI,
test) and in a fresh context of the bound app otherwise.
"""

from __future__ import annotations

import logging
import time
from contextlib import nullcontext
from typing import Callable

from flask import Flask, has_app_context

from quality_indicators.core.exceptions import NotFoundError
from quality_indicators.models import db
from quality_indicators.models.scheduling import ScheduledJob

logger = logging.getLogger(__name__)


_job_registry: dict[str, Callable] = {}


def register_job(name: str):
    """Decorator to register a job function.

    Usage:
        @register_job("activity_log_cleanup")
        def cleanup_activity_logs(app):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    return dict(_job_registry)


class SchedulerService:
    """Job registration, on/off switch and execution."""

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("SchedulerService initialized with %d registered jobs",
                    len(_job_registry))

    @classmethod
    def _context(cls):
        if has_app_context():
            return nullcontext()
        return cls._app.app_context()

    @classmethod
    def ensure_jobs_registered(cls) -> list[ScheduledJob]:
        """Create a ScheduledJob row for every registered job that lacks one."""
        if not cls._app:
            return []

        created = []
        with cls._context():
            for name, fn in _job_registry.items():
                if ScheduledJob.query.filter_by(job_name=name).first():
                    continue
                job = ScheduledJob(
                    job_name=name,
                    description=(fn.__doc__ or name).strip(),
                    is_enabled=True,
                )
                db.session.add(job)
                created.append(job)
            if created:
                db.session.commit()
                logger.info("Created %d scheduled job records", len(created))
        return created

    @classmethod
    def set_enabled(cls, job_name: str, enabled: bool) -> dict:
        """Switch a registered job on or off, creating its row if needed."""
        if job_name not in _job_registry:
            raise NotFoundError(resource="ScheduledJob", resource_id=job_name)
        cls.ensure_jobs_registered()
        with cls._context():
            job = ScheduledJob.query.filter_by(job_name=job_name).one()
            job.is_enabled = bool(enabled)
            db.session.commit()
            logger.info("Job %s %s", job_name, "enabled" if job.is_enabled else "disabled",
                        extra={"job_name": job_name})
            return job.to_dict()

    @classmethod
    def run_job(cls, job_name: str) -> dict:
        """
        Execute a single job by name.

        A job whose row is disabled is not executed; the attempt is
        recorded with status "skipped".

        Returns:
            Dict with job_name, status, duration_ms, result, error.
        """
        fn = _job_registry.get(job_name)
        if not fn:
            return {"job_name": job_name, "status": "error", "error": f"Unknown job: {job_name}"}
        if not cls._app:
            return {"job_name": job_name, "status": "error", "error": "Scheduler not initialized"}

        with cls._context():
            job_record = ScheduledJob.query.filter_by(job_name=job_name).first()
            if job_record is not None and not job_record.is_enabled:
                job_record.record_run(status="skipped")
                db.session.commit()
                logger.info("Job %s is disabled, skipped", job_name, extra={"job_name": job_name})
                return {"job_name": job_name, "status": "skipped", "duration_ms": 0,
                        "result": None, "error": None}

            start = time.monotonic()
            result = None
            error = None
            status = "success"
            try:
                result = fn(cls._app)
            except Exception as exc:
                db.session.rollback()
                status = "failed"
                error = str(exc)
                logger.exception("Job %s failed: %s", job_name, exc, extra={"job_name": job_name})
            duration_ms = int((time.monotonic() - start) * 1000)

            if job_record is not None:
                try:
                    job_record.record_run(
                        status=status,
                        duration_ms=duration_ms,
                        result=result if isinstance(result, dict) else {"output": str(result)},
                        error=error,
                    )
                    db.session.commit()
                except Exception:
                    db.session.rollback()
                    logger.exception("Failed to update job record for %s", job_name)

        return {
            "job_name": job_name,
            "status": status,
            "duration_ms": duration_ms,
            "result": result,
            "error": error,
        }

    @classmethod
    def list_jobs(cls) -> list[dict]:
        jobs = []
        for name in _job_registry:
            job_record = ScheduledJob.query.filter_by(job_name=name).first()
            jobs.append({
                "job_name": name,
                "registered": True,
                "db_record": job_record.to_dict() if job_record else None,
            })
        return jobs
