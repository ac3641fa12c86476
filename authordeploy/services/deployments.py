from __future__ import annotations

from datetime import datetime
import logging
from typing import Any

from sqlalchemy import case, func, update
from sqlmodel import Session, select

from authordeploy.models import CompletionSignal, DeploymentOptions, DeploymentORM, DeploymentRead
from authordeploy.provisioner import ProvisioningClient
from authordeploy.services import config_store
from authordeploy.services.constants import (
    DEPLOYMENT_STATUS_PENDING,
    DEPLOYMENT_STATUS_RUNNING,
    TERMINAL_DEPLOYMENT_STATUSES,
)
from authordeploy.services.dispatcher import dispatch_deployment
from authordeploy.services.errors import DeploymentStateException, NotFoundException, ValidationException
from authordeploy.services.requests import build_request

logger = logging.getLogger(__name__)


def format_log_entry(message: str, *, at: datetime) -> str:
    return f"[{at.strftime('%Y-%m-%dT%H:%M:%SZ')}] {message}"


def _appended_log(entry: str):
    current = func.coalesce(DeploymentORM.deployment_log, "")
    return case((current == "", entry), else_=current.concat("\n").concat(entry))


def transition_from_pending(
    session: Session,
    *,
    deployment_id: int,
    status: str,
    log_entry: str,
    now: datetime,
    **fields: Any,
) -> bool:
    """Move a deployment out of ``pending`` with a single conditional UPDATE.

    Returns False when the row was no longer pending at write time, in which
    case nothing was written. The status check and the write happen in the same
    statement, so a concurrent writer that commits first always wins.
    """
    stmt = (
        update(DeploymentORM)
        .where(DeploymentORM.id == deployment_id, DeploymentORM.status == DEPLOYMENT_STATUS_PENDING)
        .values(status=status, deployment_log=_appended_log(log_entry), updated_at=now, **fields)
        .execution_options(synchronize_session=False)
    )
    result = session.execute(stmt)
    session.commit()
    return result.rowcount == 1


def _get_deployment_orm(session: Session, *, deployment_id: int, operator_id: str | None = None) -> DeploymentORM:
    stmt = select(DeploymentORM).where(DeploymentORM.id == deployment_id)
    if operator_id is not None:
        stmt = stmt.where(DeploymentORM.operator_id == operator_id)
    if not (deployment := session.exec(stmt).one_or_none()):
        raise NotFoundException("Deployment not found")
    return deployment


def deploy(
    session: Session,
    *,
    operator_id: str,
    options: DeploymentOptions,
    provisioner: ProvisioningClient,
) -> DeploymentRead:
    """Build a request from the operator's config and the user's options, then dispatch it."""
    config = config_store.load_config(session, operator_id=operator_id)
    try:
        request = build_request(options, config)
    except ValidationException as exc:
        logger.info("Rejected deployment options for operator_id=%s kind=%s: %s", operator_id, exc.kind, exc)
        raise
    return dispatch_deployment(session, operator_id=operator_id, request=request, provisioner=provisioner)


def list_deployments(session: Session, *, operator_id: str) -> list[DeploymentRead]:
    deployments = session.exec(
        select(DeploymentORM)
        .where(DeploymentORM.operator_id == operator_id)
        .order_by(DeploymentORM.created_at.desc(), DeploymentORM.id.desc())
    ).all()
    return [DeploymentRead.model_validate(d) for d in deployments]


def get_deployment(session: Session, *, deployment_id: int, operator_id: str | None = None) -> DeploymentRead:
    deployment = _get_deployment_orm(session, deployment_id=deployment_id, operator_id=operator_id)
    return DeploymentRead.model_validate(deployment)


def record_completion(session: Session, *, provisioning_id: str, signal: CompletionSignal) -> DeploymentRead:
    """Apply the provisioning service's out-of-band outcome to a pending deployment.

    A signal for a deployment that already left ``pending`` (including one the
    stale sweep failed first) is refused with ``DeploymentStateException``.
    """
    if signal.status not in TERMINAL_DEPLOYMENT_STATUSES:
        raise ValidationException(
            f"status must be one of: {', '.join(TERMINAL_DEPLOYMENT_STATUSES)}",
            field="status",
            constraint="choice",
        )
    if signal.status == DEPLOYMENT_STATUS_RUNNING and not (signal.instance_id or "").strip():
        raise ValidationException(
            "instance_id is required when reporting a running deployment",
            field="instance_id",
            constraint="required",
        )

    deployment = session.exec(
        select(DeploymentORM).where(DeploymentORM.provisioning_id == provisioning_id)
    ).one_or_none()
    if deployment is None:
        raise NotFoundException("Deployment not found")

    now = datetime.utcnow()
    fields: dict[str, Any] = {}
    if signal.status == DEPLOYMENT_STATUS_RUNNING:
        fields = {"instance_id": signal.instance_id.strip(), "public_address": signal.public_address}
        message = signal.log_line or f"Provisioning service reported instance {fields['instance_id']} running"
    else:
        message = signal.log_line or "Provisioning service reported the deployment as failed"

    applied = transition_from_pending(
        session,
        deployment_id=deployment.id,
        status=signal.status,
        log_entry=format_log_entry(message, at=now),
        now=now,
        **fields,
    )
    session.refresh(deployment)
    if not applied:
        logger.warning(
            "Ignoring %s signal for deployment id=%s provisioning_id=%s already %s",
            signal.status,
            deployment.id,
            provisioning_id,
            deployment.status,
        )
        raise DeploymentStateException(
            f"Deployment {deployment.id} is already {deployment.status}",
            status=deployment.status,
        )
    log = logger.info if deployment.status == DEPLOYMENT_STATUS_RUNNING else logger.warning
    log(
        "Deployment id=%s provisioning_id=%s reported %s instance_id=%s",
        deployment.id,
        provisioning_id,
        deployment.status,
        deployment.instance_id,
    )
    return DeploymentRead.model_validate(deployment)
