from __future__ import annotations

import pytest

from authordeploy.models import CompletionSignal
from authordeploy.services import deployments
from authordeploy.services.dispatcher import dispatch_deployment
from authordeploy.services.errors import DeploymentStateException, NotFoundException, ValidationException
from authordeploy.services.requests import DeploymentRequest


def _dispatch(db_session, fake_provisioner, *, operator_id: str = "op-1", name: str = "author-site"):
    request = DeploymentRequest(
        name=name,
        region="us-east-1",
        rollout_kind="incremental",
        target_mode="existing-instance",
        existing_instance_id="i-0abc",
        include_migrations=True,
        initialize_database=False,
        auto_create_security_boundary=False,
        auto_create_access_credential=False,
        auto_rollout=False,
    )
    return dispatch_deployment(db_session, operator_id=operator_id, request=request, provisioner=fake_provisioner)


def test_running_signal_records_instance_and_appends_log(db_session, fake_provisioner):
    deployment = _dispatch(db_session, fake_provisioner)

    updated = deployments.record_completion(
        db_session,
        provisioning_id=deployment.provisioning_id,
        signal=CompletionSignal(
            status="running",
            instance_id="i-0abc",
            public_address="203.0.113.7",
            log_line="Application URL: http://203.0.113.7",
        ),
    )

    assert updated.status == "running"
    assert updated.instance_id == "i-0abc"
    assert updated.public_address == "203.0.113.7"
    assert updated.created_at == deployment.created_at
    lines = updated.deployment_log.split("\n")
    assert lines[0] == "Accepted deployment author-site"
    assert lines[1].endswith("Application URL: http://203.0.113.7")


def test_failed_signal_keeps_instance_fields_empty(db_session, fake_provisioner):
    deployment = _dispatch(db_session, fake_provisioner)

    updated = deployments.record_completion(
        db_session,
        provisioning_id=deployment.provisioning_id,
        signal=CompletionSignal(status="failed", instance_id="i-ignored", log_line="AMI not found"),
    )

    assert updated.status == "failed"
    assert updated.instance_id is None
    assert updated.deployment_log.endswith("AMI not found")


def test_second_signal_is_refused_without_changes(db_session, fake_provisioner):
    deployment = _dispatch(db_session, fake_provisioner)
    first = deployments.record_completion(
        db_session,
        provisioning_id=deployment.provisioning_id,
        signal=CompletionSignal(status="failed"),
    )

    with pytest.raises(DeploymentStateException):
        deployments.record_completion(
            db_session,
            provisioning_id=deployment.provisioning_id,
            signal=CompletionSignal(status="running", instance_id="i-0abc"),
        )

    current = deployments.get_deployment(db_session, deployment_id=deployment.id)
    assert current.status == "failed"
    assert current.deployment_log == first.deployment_log


@pytest.mark.parametrize(
    ("signal", "field"),
    [
        (CompletionSignal(status="pending"), "status"),
        (CompletionSignal(status="deleted"), "status"),
        (CompletionSignal(status="running"), "instance_id"),
        (CompletionSignal(status="running", instance_id="  "), "instance_id"),
    ],
)
def test_invalid_signals_are_rejected(db_session, fake_provisioner, signal, field):
    deployment = _dispatch(db_session, fake_provisioner)

    with pytest.raises(ValidationException) as excinfo:
        deployments.record_completion(db_session, provisioning_id=deployment.provisioning_id, signal=signal)

    assert excinfo.value.field == field
    assert deployments.get_deployment(db_session, deployment_id=deployment.id).status == "pending"


def test_signal_for_unknown_deployment_raises(db_session):
    with pytest.raises(NotFoundException):
        deployments.record_completion(
            db_session,
            provisioning_id="missing",
            signal=CompletionSignal(status="failed"),
        )


def test_list_and_get_are_scoped_to_operator(db_session, fake_provisioner):
    mine = _dispatch(db_session, fake_provisioner, name="first")
    newer = _dispatch(db_session, fake_provisioner, name="second")
    theirs = _dispatch(db_session, fake_provisioner, operator_id="op-2", name="other")

    listed = deployments.list_deployments(db_session, operator_id="op-1")

    assert [d.id for d in listed] == [newer.id, mine.id]
    assert deployments.get_deployment(db_session, operator_id="op-1", deployment_id=mine.id).name == "first"
    with pytest.raises(NotFoundException):
        deployments.get_deployment(db_session, operator_id="op-1", deployment_id=theirs.id)
