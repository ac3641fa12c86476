from __future__ import annotations

from datetime import datetime
import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from authordeploy.models import DeploymentORM, DeploymentRead
from authordeploy.provisioner import ProvisioningClient
from authordeploy.services.constants import DEPLOYMENT_STATUS_PENDING
from authordeploy.services.errors import DispatchException, IntegrityException
from authordeploy.services.requests import DeploymentRequest

logger = logging.getLogger(__name__)


def dispatch_deployment(
    session: Session,
    *,
    operator_id: str,
    request: DeploymentRequest,
    provisioner: ProvisioningClient,
) -> DeploymentRead:
    """Submit a built request and record the accepted deployment as ``pending``.

    The row is written only after the provisioning service accepts the request,
    so a ``DispatchException`` never leaves a dangling pending deployment.
    Acceptance says nothing about the outcome; that arrives later through the
    completion signal or the stale-deployment sweep.
    """
    payload = {"operator_id": operator_id, **request.to_payload()}
    try:
        acceptance = provisioner.submit(payload)
    except DispatchException as exc:
        logger.warning(
            "Dispatch of deployment name=%s for operator_id=%s failed category=%s retryable=%s: %s",
            request.name,
            operator_id,
            exc.category,
            exc.retryable,
            exc,
        )
        raise

    now = datetime.utcnow()
    deployment = DeploymentORM(
        operator_id=operator_id,
        provisioning_id=acceptance.deployment_id,
        name=request.name,
        region=request.region,
        rollout_kind=request.rollout_kind,
        target_mode=request.target_mode,
        status=DEPLOYMENT_STATUS_PENDING,
        deployment_log=acceptance.initial_log_line or "",
        created_at=now,
        updated_at=now,
    )
    session.add(deployment)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.warning(
            "Provisioning service reused deployment_id=%s; refusing to record a second deployment",
            acceptance.deployment_id,
        )
        raise IntegrityException(f"Deployment {acceptance.deployment_id} is already recorded") from exc
    session.refresh(deployment)
    logger.info(
        "Dispatched deployment id=%s provisioning_id=%s operator_id=%s region=%s rollout_kind=%s",
        deployment.id,
        deployment.provisioning_id,
        operator_id,
        deployment.region,
        deployment.rollout_kind,
    )
    return DeploymentRead.model_validate(deployment)
