from __future__ import annotations

import logging

import typer
import yaml
from fastapi.encoders import jsonable_encoder

from authordeploy import db
from authordeploy.db import init_db, session_scope
from authordeploy.logging_config import configure_logging
from authordeploy.models import DeploymentOptions, ProvisioningConfigCreate, ProvisioningConfigPublic
from authordeploy.provisioner import build_provisioner
from authordeploy.services import config_store, deployments as deployment_service
from authordeploy.services.constants import ROLLOUT_INCREMENTAL, TARGET_NEW_INSTANCE
from authordeploy.services.errors import AuthorDeployException
from authordeploy.services.tracker import ReconciliationLoop
from authordeploy.settings import load_settings

configure_logging()
logger = logging.getLogger(__name__)
app = typer.Typer(help="Author platform deployment CLI", pretty_exceptions_show_locals=False)


@app.callback()
def main() -> None:
    """Create any missing tables before running a command."""
    init_db(db.engine)


def _exit_for_domain_error(exc: AuthorDeployException) -> None:
    logger.warning("CLI command failed with domain error: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _echo_yaml_entity(entity: object) -> None:
    encoded = jsonable_encoder(entity)
    typer.echo(yaml.safe_dump(encoded, sort_keys=False), nl=False)


@app.command("save-config")
def save_config(
    operator_id: str,
    *,
    access_key_id: str = typer.Option(..., "--access-key-id"),
    secret_access_key: str = typer.Option(..., "--secret-access-key", prompt=True, hide_input=True),
    default_region: str = typer.Option("us-east-1", "--region"),
    instance_size: str = typer.Option("t2.micro", "--instance-size"),
    security_boundary_id: str | None = typer.Option(
        None, "--security-boundary-id", help="Existing security group to reuse instead of creating one."
    ),
    access_credential_id: str | None = typer.Option(
        None, "--access-credential-id", help="Existing key pair to reuse instead of creating one."
    ),
    subnet_id: str | None = typer.Option(None, "--subnet-id"),
    image_id: str | None = typer.Option(None, "--image-id"),
    auto_rollout: bool = typer.Option(False, "--auto-rollout/--no-auto-rollout"),
) -> None:
    with session_scope() as session:
        try:
            config = config_store.save_config(
                session,
                operator_id=operator_id,
                payload=ProvisioningConfigCreate(
                    access_key_id=access_key_id,
                    secret_access_key=secret_access_key,
                    default_region=default_region,
                    instance_size=instance_size,
                    security_boundary_id=security_boundary_id,
                    access_credential_id=access_credential_id,
                    subnet_id=subnet_id,
                    image_id=image_id,
                    auto_rollout=auto_rollout,
                ),
            )
        except AuthorDeployException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(ProvisioningConfigPublic.model_validate(config.model_dump()))


@app.command("get-config")
def get_config(operator_id: str) -> None:
    with session_scope() as session:
        config = config_store.load_config(session, operator_id=operator_id)
    if config is None:
        typer.echo(f"Error: No provisioning config for operator {operator_id}", err=True)
        raise typer.Exit(code=1)
    _echo_yaml_entity(ProvisioningConfigPublic.model_validate(config.model_dump()))


@app.command("deploy")
def deploy(
    operator_id: str,
    *,
    name: str = typer.Option(..., "--name"),
    region: str | None = typer.Option(None, "--region", help="Defaults to the configured region."),
    rollout_kind: str = typer.Option(ROLLOUT_INCREMENTAL, "--rollout-kind", help="'fresh' or 'incremental'."),
    target_mode: str = typer.Option(
        TARGET_NEW_INSTANCE, "--target-mode", help="'new-instance' or 'existing-instance'."
    ),
    existing_instance_id: str | None = typer.Option(None, "--instance-id"),
    include_migrations: bool = typer.Option(True, "--migrations/--no-migrations"),
    initialize_database: bool = typer.Option(False, "--init-database/--no-init-database"),
    auto_create_security_boundary: bool = typer.Option(
        True, "--create-security-boundary/--no-create-security-boundary"
    ),
    auto_create_access_credential: bool = typer.Option(
        True, "--create-access-credential/--no-create-access-credential"
    ),
) -> None:
    options = DeploymentOptions(
        name=name,
        region=region,
        rollout_kind=rollout_kind,
        target_mode=target_mode,
        existing_instance_id=existing_instance_id,
        include_migrations=include_migrations,
        initialize_database=initialize_database,
        auto_create_security_boundary=auto_create_security_boundary,
        auto_create_access_credential=auto_create_access_credential,
    )
    with session_scope() as session:
        try:
            deployment = deployment_service.deploy(
                session,
                operator_id=operator_id,
                options=options,
                provisioner=build_provisioner(),
            )
        except AuthorDeployException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(deployment)


@app.command("list-deployments")
def list_deployments(operator_id: str) -> None:
    with session_scope() as session:
        _echo_yaml_entity(deployment_service.list_deployments(session, operator_id=operator_id))


@app.command("get-deployment")
def get_deployment(operator_id: str, deployment_id: int) -> None:
    with session_scope() as session:
        try:
            deployment = deployment_service.get_deployment(
                session,
                operator_id=operator_id,
                deployment_id=deployment_id,
            )
        except AuthorDeployException as e:
            _exit_for_domain_error(e)
        _echo_yaml_entity(deployment)


@app.command("sweep")
def sweep() -> None:
    """Run a single stale-deployment pass and print what it expired."""
    result = ReconciliationLoop(engine=db.engine).run_once()
    _echo_yaml_entity(result)


@app.command("track")
def track(
    interval: float | None = typer.Option(
        None, "--interval", help="Seconds between passes; defaults to AUTHORDEPLOY_TRACKER_INTERVAL_SEC."
    ),
) -> None:
    """Run the stale-deployment sweep in the foreground until interrupted."""
    loop = ReconciliationLoop(engine=db.engine, interval=interval or load_settings().tracker_interval_sec)
    try:
        loop.run_forever()
    except KeyboardInterrupt:
        logger.info("Interrupted; stopping reconciliation loop")


if __name__ == "__main__":
    app()
