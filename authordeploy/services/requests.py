"""Turn a user's deploy-form choices into an immutable provisioning request.

Everything here is pure: no session, no network. The rules are applied in a
fixed order and the first violation is raised as a ``ValidationException``
whose ``kind`` names the rule.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from authordeploy.models import DeploymentOptions, ProvisioningConfigRead
from authordeploy.services.constants import (
    REGIONS,
    ROLLOUT_FRESH,
    ROLLOUT_KINDS,
    TARGET_EXISTING_INSTANCE,
    TARGET_MODES,
    TARGET_NEW_INSTANCE,
)
from authordeploy.services.errors import ValidationException

KIND_MISSING_CREDENTIALS = "missing_credentials"
KIND_MISSING_NAME = "missing_name"
KIND_MISSING_INSTANCE_TARGET = "missing_instance_target"
KIND_INVALID_CHOICE = "invalid_choice"


@dataclass(frozen=True)
class DeploymentRequest:
    name: str
    region: str
    rollout_kind: str
    target_mode: str
    existing_instance_id: str | None
    include_migrations: bool
    initialize_database: bool
    auto_create_security_boundary: bool
    auto_create_access_credential: bool
    auto_rollout: bool
    # Only set for new instances, taken from the operator's config:
    instance_size: str | None = None
    security_boundary_id: str | None = None
    access_credential_id: str | None = None
    subnet_id: str | None = None
    image_id: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return asdict(self)


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _require_choice(field: str, value: str, choices: tuple[str, ...]) -> None:
    if value not in choices:
        raise ValidationException(
            f"{field} must be one of: {', '.join(choices)}",
            field=field,
            constraint="choice",
            kind=KIND_INVALID_CHOICE,
        )


def build_request(options: DeploymentOptions, config: ProvisioningConfigRead | None) -> DeploymentRequest:
    if config is None:
        raise ValidationException(
            "Provisioning credentials are not configured",
            field="config",
            constraint="required",
            kind=KIND_MISSING_CREDENTIALS,
        )
    if _blank(options.name):
        raise ValidationException(
            "Deployment name is required",
            field="name",
            constraint="required",
            kind=KIND_MISSING_NAME,
        )
    _require_choice("rollout_kind", options.rollout_kind, ROLLOUT_KINDS)
    _require_choice("target_mode", options.target_mode, TARGET_MODES)

    region = options.region if not _blank(options.region) else config.default_region
    # Only a fresh rollout may (re)initialize the database.
    initialize_database = options.initialize_database and options.rollout_kind == ROLLOUT_FRESH
    auto_rollout = config.auto_rollout if options.auto_rollout is None else options.auto_rollout

    if options.target_mode == TARGET_EXISTING_INSTANCE:
        if _blank(options.existing_instance_id):
            raise ValidationException(
                "An existing instance id is required to deploy to an existing instance",
                field="existing_instance_id",
                constraint="required",
                kind=KIND_MISSING_INSTANCE_TARGET,
            )
        # The instance's own region governs; ours is informational and not checked.
        return DeploymentRequest(
            name=options.name.strip(),
            region=region,
            rollout_kind=options.rollout_kind,
            target_mode=TARGET_EXISTING_INSTANCE,
            existing_instance_id=options.existing_instance_id.strip(),
            include_migrations=options.include_migrations,
            initialize_database=initialize_database,
            auto_create_security_boundary=False,
            auto_create_access_credential=False,
            auto_rollout=auto_rollout,
        )

    _require_choice("region", region, REGIONS)
    return DeploymentRequest(
        name=options.name.strip(),
        region=region,
        rollout_kind=options.rollout_kind,
        target_mode=TARGET_NEW_INSTANCE,
        existing_instance_id=None,
        include_migrations=options.include_migrations,
        initialize_database=initialize_database,
        auto_create_security_boundary=(
            options.auto_create_security_boundary and _blank(config.security_boundary_id)
        ),
        auto_create_access_credential=(
            options.auto_create_access_credential and _blank(config.access_credential_id)
        ),
        auto_rollout=auto_rollout,
        instance_size=config.instance_size,
        security_boundary_id=config.security_boundary_id,
        access_credential_id=config.access_credential_id,
        subnet_id=config.subnet_id,
        image_id=config.image_id,
    )
