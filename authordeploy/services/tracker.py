"""Timeout policy for deployments that never hear back from the provisioning service.

A deployment that stays ``pending`` longer than ``STALE_THRESHOLD_SECONDS`` is
marked ``failed``. This is a liveness decision made locally ("we stopped
waiting"); the remote instance is never consulted, and the log entry says so.

Every pass re-reads the table and re-derives elapsed time from ``created_at``,
so passes keep no state between runs and may overlap, or run in several
processes at once, without appending duplicate log entries: only the update
that still finds the row ``pending`` writes anything.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
import threading

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from authordeploy.models import DeploymentORM
from authordeploy.services.constants import (
    DEPLOYMENT_STATUS_FAILED,
    DEPLOYMENT_STATUS_PENDING,
    RECONCILE_INTERVAL_SECONDS,
    STALE_THRESHOLD_SECONDS,
)
from authordeploy.services.deployments import format_log_entry, transition_from_pending

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaleCandidate:
    deployment_id: int
    created_at: datetime


@dataclass(frozen=True)
class SweepResult:
    swept_at: datetime
    scanned: list[int] = field(default_factory=list)
    expired: list[int] = field(default_factory=list)


def elapsed_seconds(created_at: datetime, now: datetime) -> int:
    return int((now - created_at).total_seconds())


def timeout_log_entry(elapsed: int, *, now: datetime) -> str:
    return format_log_entry(
        f"No completion signal after {elapsed}s; marked as failed due to timeout "
        f"(threshold {STALE_THRESHOLD_SECONDS}s)",
        at=now,
    )


def find_stale_deployments(session: Session, *, now: datetime) -> list[StaleCandidate]:
    cutoff = now - timedelta(seconds=STALE_THRESHOLD_SECONDS)
    rows = session.exec(
        select(DeploymentORM.id, DeploymentORM.created_at)
        .where(
            DeploymentORM.status == DEPLOYMENT_STATUS_PENDING,
            DeploymentORM.created_at < cutoff,
        )
        .order_by(DeploymentORM.created_at, DeploymentORM.id)
    ).all()
    return [StaleCandidate(deployment_id=row[0], created_at=row[1]) for row in rows]


def expire_deployment(session: Session, candidate: StaleCandidate, *, now: datetime) -> bool:
    """Fail one stale deployment if it is still pending; return whether this call did it."""
    elapsed = elapsed_seconds(candidate.created_at, now)
    applied = transition_from_pending(
        session,
        deployment_id=candidate.deployment_id,
        status=DEPLOYMENT_STATUS_FAILED,
        log_entry=timeout_log_entry(elapsed, now=now),
        now=now,
    )
    if applied:
        logger.warning(
            "Marked deployment id=%s as failed due to timeout after %ss (threshold %ss)",
            candidate.deployment_id,
            elapsed,
            STALE_THRESHOLD_SECONDS,
        )
    else:
        logger.debug("Deployment id=%s left pending before the sweep reached it", candidate.deployment_id)
    return applied


def sweep_stale_deployments(session: Session, *, now: datetime | None = None) -> SweepResult:
    now = now or datetime.utcnow()
    candidates = find_stale_deployments(session, now=now)
    expired = [c.deployment_id for c in candidates if expire_deployment(session, c, now=now)]
    result = SweepResult(swept_at=now, scanned=[c.deployment_id for c in candidates], expired=expired)
    if candidates:
        logger.info("Stale sweep scanned=%s expired=%s", len(result.scanned), len(result.expired))
    return result


class ReconciliationLoop:
    """Run the stale sweep on a fixed interval in a background thread."""

    def __init__(self, *, engine: Engine, interval: float = RECONCILE_INTERVAL_SECONDS) -> None:
        self._engine = engine
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> SweepResult:
        with Session(self._engine) as session:
            return sweep_stale_deployments(session)

    def run_forever(self) -> None:
        logger.info(
            "Starting reconciliation loop interval=%ss threshold=%ss",
            self._interval,
            STALE_THRESHOLD_SECONDS,
        )
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                # A failed pass is retried on the next tick; it must not kill the loop.
                logger.exception("Reconciliation pass failed")
            self._stop_event.wait(self._interval)
        logger.info("Reconciliation loop stopped")

    def start(self) -> None:
        if self.is_running:
            logger.warning("Reconciliation loop already running")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="reconciliation-loop", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
