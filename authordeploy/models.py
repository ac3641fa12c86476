from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, Index, String, Text

from authordeploy.services.constants import (
    DEPLOYMENT_STATUS_PENDING,
    ROLLOUT_INCREMENTAL,
    TARGET_NEW_INSTANCE,
)


class ProvisioningConfigBase(SQLModel):
    access_key_id: str
    secret_access_key: str
    default_region: str = "us-east-1"
    instance_size: str = "t2.micro"
    security_boundary_id: Optional[str] = None
    access_credential_id: Optional[str] = None
    subnet_id: Optional[str] = None
    image_id: Optional[str] = None
    auto_rollout: bool = False


class ProvisioningConfigORM(ProvisioningConfigBase, table=True):
    __tablename__ = "provisioning_config"

    id: Optional[int] = Field(default=None, primary_key=True)
    # One live config per operator account:
    operator_id: str = Field(sa_column=Column(String(), nullable=False, unique=True, index=True))
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class ProvisioningConfigCreate(ProvisioningConfigBase):
    pass


class ProvisioningConfigRead(ProvisioningConfigBase):
    operator_id: str
    created_at: datetime
    updated_at: datetime


class ProvisioningConfigPublic(SQLModel):
    """Config as shown to the UI: the secret handle is never echoed back."""

    operator_id: str
    access_key_id: str
    default_region: str
    instance_size: str
    security_boundary_id: Optional[str] = None
    access_credential_id: Optional[str] = None
    subnet_id: Optional[str] = None
    image_id: Optional[str] = None
    auto_rollout: bool
    created_at: datetime
    updated_at: datetime


class DeploymentOptions(SQLModel):
    """The user's choices on the deploy form, before defaults and exclusion rules are applied."""

    name: str
    region: Optional[str] = None
    rollout_kind: str = ROLLOUT_INCREMENTAL
    target_mode: str = TARGET_NEW_INSTANCE
    existing_instance_id: Optional[str] = None
    include_migrations: bool = True
    initialize_database: bool = False
    auto_create_security_boundary: bool = True
    auto_create_access_credential: bool = True
    auto_rollout: Optional[bool] = None


class DeploymentBase(SQLModel):
    name: str
    region: str
    rollout_kind: str
    target_mode: str


class DeploymentORM(DeploymentBase, table=True):
    __tablename__ = "deployment"
    __table_args__ = (
        # Range scan used by the stale-deployment sweep:
        Index("ix_deployment_status_created_at", "status", "created_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    operator_id: str = Field(sa_column=Column(String(), nullable=False, index=True))
    provisioning_id: str = Field(sa_column=Column(String(), nullable=False, unique=True))
    status: str = Field(default=DEPLOYMENT_STATUS_PENDING, nullable=False, index=True)
    deployment_log: str = Field(default="", sa_column=Column(Text(), nullable=False, default=""))
    instance_id: Optional[str] = Field(default=None)
    public_address: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow, nullable=False, index=True)
    updated_at: datetime = Field(default_factory=datetime.utcnow, nullable=False)


class DeploymentRead(DeploymentBase):
    id: int
    operator_id: str
    provisioning_id: str
    status: str
    deployment_log: str = ""
    instance_id: Optional[str] = None
    public_address: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CompletionSignal(SQLModel):
    """Out-of-band outcome reported by the provisioning service."""

    status: str
    instance_id: Optional[str] = None
    public_address: Optional[str] = None
    log_line: Optional[str] = None
