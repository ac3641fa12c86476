from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlmodel import Session

from authordeploy.db import get_session
from authordeploy.models import (
    DeploymentOptions,
    DeploymentRead,
    ProvisioningConfigCreate,
    ProvisioningConfigPublic,
)
from authordeploy.provisioner import ProvisioningClient, get_provisioner
from authordeploy.services import config_store, deployments as deployment_service
from authordeploy.services.errors import NotFoundException

router = APIRouter(prefix="/operators", tags=["operators"])


@router.put("/{operator_id}/config", response_model=ProvisioningConfigPublic)
def save_config(
    operator_id: str, payload: ProvisioningConfigCreate, session: Session = Depends(get_session)
) -> ProvisioningConfigPublic:
    config = config_store.save_config(session, operator_id=operator_id, payload=payload)
    return ProvisioningConfigPublic.model_validate(config.model_dump())


@router.get("/{operator_id}/config", response_model=ProvisioningConfigPublic)
def get_config(operator_id: str, session: Session = Depends(get_session)) -> ProvisioningConfigPublic:
    if (config := config_store.load_config(session, operator_id=operator_id)) is None:
        raise NotFoundException("Provisioning config not found")
    return ProvisioningConfigPublic.model_validate(config.model_dump())


@router.post(
    "/{operator_id}/deployments",
    response_model=DeploymentRead,
    status_code=status.HTTP_201_CREATED,
)
def create_deployment(
    operator_id: str,
    options: DeploymentOptions,
    session: Session = Depends(get_session),
    provisioner: ProvisioningClient = Depends(get_provisioner),
) -> DeploymentRead:
    return deployment_service.deploy(session, operator_id=operator_id, options=options, provisioner=provisioner)


@router.get("/{operator_id}/deployments", response_model=list[DeploymentRead])
def list_deployments(operator_id: str, session: Session = Depends(get_session)) -> list[DeploymentRead]:
    return deployment_service.list_deployments(session, operator_id=operator_id)


@router.get("/{operator_id}/deployments/{deployment_id}", response_model=DeploymentRead)
def get_deployment(
    operator_id: str, deployment_id: int, session: Session = Depends(get_session)
) -> DeploymentRead:
    return deployment_service.get_deployment(session, operator_id=operator_id, deployment_id=deployment_id)
