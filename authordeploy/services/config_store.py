from __future__ import annotations

from datetime import datetime
import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from authordeploy.models import ProvisioningConfigCreate, ProvisioningConfigORM, ProvisioningConfigRead
from authordeploy.services.constants import (
    ACCESS_KEY_ID_MIN_LEN,
    CREDENTIAL_MAX_LEN,
    INSTANCE_SIZES,
    REGIONS,
    SECRET_ACCESS_KEY_MIN_LEN,
)
from authordeploy.services.errors import IntegrityException, ValidationException

logger = logging.getLogger(__name__)

_OPTIONAL_IDS = ("security_boundary_id", "access_credential_id", "subnet_id", "image_id")


def _check_length(field: str, value: str, *, min_len: int, max_len: int) -> None:
    if len(value) < min_len:
        raise ValidationException(
            f"{field} must be at least {min_len} characters",
            field=field,
            constraint="min_length",
        )
    if len(value) > max_len:
        raise ValidationException(
            f"{field} must be at most {max_len} characters",
            field=field,
            constraint="max_length",
        )


def _check_choice(field: str, value: str | None, choices: tuple[str, ...]) -> None:
    if not value:
        raise ValidationException(f"{field} is required", field=field, constraint="required")
    if value not in choices:
        raise ValidationException(
            f"{field} must be one of: {', '.join(choices)}",
            field=field,
            constraint="choice",
        )


def validate_config(payload: ProvisioningConfigCreate) -> ProvisioningConfigCreate:
    """Validate a config payload and return it with blank optional identifiers nulled.

    Fields are checked in a fixed order and the first violation is raised.
    """
    _check_length(
        "access_key_id",
        payload.access_key_id,
        min_len=ACCESS_KEY_ID_MIN_LEN,
        max_len=CREDENTIAL_MAX_LEN,
    )
    _check_length(
        "secret_access_key",
        payload.secret_access_key,
        min_len=SECRET_ACCESS_KEY_MIN_LEN,
        max_len=CREDENTIAL_MAX_LEN,
    )
    _check_choice("default_region", payload.default_region, REGIONS)
    _check_choice("instance_size", payload.instance_size, INSTANCE_SIZES)

    cleaned = {name: (getattr(payload, name) or "").strip() or None for name in _OPTIONAL_IDS}
    return payload.model_copy(update=cleaned)


def _get_config_orm(session: Session, *, operator_id: str) -> ProvisioningConfigORM | None:
    return session.exec(
        select(ProvisioningConfigORM).where(ProvisioningConfigORM.operator_id == operator_id)
    ).one_or_none()


def save_config(session: Session, *, operator_id: str, payload: ProvisioningConfigCreate) -> ProvisioningConfigRead:
    """Validate and upsert the operator's single provisioning config."""
    try:
        payload = validate_config(payload)
    except ValidationException as exc:
        logger.info("Rejected provisioning config for operator_id=%s field=%s: %s", operator_id, exc.field, exc)
        raise

    now = datetime.utcnow()
    config = _get_config_orm(session, operator_id=operator_id)
    if config is None:
        config = ProvisioningConfigORM(operator_id=operator_id, created_at=now, **payload.model_dump())
        created = True
    else:
        # Full replacement: every field of the payload overwrites the stored row.
        for key, value in payload.model_dump().items():
            setattr(config, key, value)
        created = False
    config.updated_at = now
    session.add(config)
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.warning("Provisioning config save conflicted for operator_id=%s", operator_id)
        raise IntegrityException("Provisioning config was saved concurrently; retry the save") from exc
    session.refresh(config)
    logger.info(
        "%s provisioning config for operator_id=%s region=%s instance_size=%s",
        "Created" if created else "Replaced",
        operator_id,
        config.default_region,
        config.instance_size,
    )
    return ProvisioningConfigRead.model_validate(config)


def load_config(session: Session, *, operator_id: str) -> ProvisioningConfigRead | None:
    config = _get_config_orm(session, operator_id=operator_id)
    return None if config is None else ProvisioningConfigRead.model_validate(config)
