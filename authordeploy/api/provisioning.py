from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlmodel import Session

from authordeploy.db import get_session
from authordeploy.models import CompletionSignal, DeploymentRead
from authordeploy.services import deployments as deployment_service

router = APIRouter(prefix="/provisioning", tags=["provisioning"])


@router.post("/{provisioning_id}/completion", response_model=DeploymentRead)
def report_completion(
    provisioning_id: str, signal: CompletionSignal, session: Session = Depends(get_session)
) -> DeploymentRead:
    """Callback for the provisioning service once an instance is up or has failed."""
    return deployment_service.record_completion(session, provisioning_id=provisioning_id, signal=signal)
