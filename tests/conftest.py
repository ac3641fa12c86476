from __future__ import annotations

import importlib
import os

# Keep the app's own engine off the working directory; tests use their own engines.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from starlette.testclient import TestClient
from sqlmodel import Session
from typer.testing import CliRunner

from authordeploy.db import build_engine, get_session, init_db
from authordeploy.main import app
from authordeploy.provisioner import ProvisioningAcceptance, get_provisioner
from authordeploy.services.errors import DispatchException


class FakeProvisioner:
    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.raise_on_submit: Exception | None = None

    def submit(self, payload: dict) -> ProvisioningAcceptance:
        self.calls.append(payload)
        if self.raise_on_submit is not None:
            raise self.raise_on_submit
        return ProvisioningAcceptance(
            deployment_id=f"prov-{len(self.calls)}",
            initial_log_line=f"Accepted deployment {payload['name']}",
        )

    def reject(self, message: str = "quota exceeded", *, retryable: bool = False) -> None:
        self.raise_on_submit = DispatchException(message, category="rejected", retryable=retryable, status_code=400)


@pytest.fixture
def db_session():
    engine = build_engine("sqlite:///:memory:")
    init_db(engine)
    with Session(engine) as session:
        yield session


@pytest.fixture
def fake_provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def client(db_session, fake_provisioner):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_session] = override_get_db
    app.dependency_overrides[get_provisioner] = lambda: fake_provisioner

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture()
def cli_runner(tmp_path, monkeypatch):
    # File-backed so every CLI invocation sees the rows written by the previous one.
    # No tables yet: the CLI creates its schema on first use.
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test_cli.db'}")

    import authordeploy.db as db

    importlib.reload(db)

    import authordeploy.cli as cli

    importlib.reload(cli)

    return CliRunner(), cli.app
