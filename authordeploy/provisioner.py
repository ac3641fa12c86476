from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

import httpx

from authordeploy.services.errors import DispatchException
from authordeploy.settings import Settings, load_settings

logger = logging.getLogger(__name__)

DISPATCH_CATEGORY_REJECTED = "rejected"
DISPATCH_CATEGORY_TRANSPORT = "transport"
DISPATCH_CATEGORY_INVALID_RESPONSE = "invalid_response"

_RETRYABLE_STATUS_CODES = {408, 425, 429, 502, 503, 504}


@dataclass(frozen=True)
class ProvisioningAcceptance:
    deployment_id: str
    initial_log_line: str | None = None


def _response_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        for key in ("error", "detail", "message"):
            if isinstance(payload.get(key), str):
                return payload[key]
    detail = response.text.strip()
    if len(detail) > 400:
        detail = f"{detail[:397]}..."
    return detail


def parse_acceptance(response: httpx.Response) -> ProvisioningAcceptance:
    """Read the two fields we trust from an accepting response; ignore everything else."""
    try:
        payload = response.json()
    except ValueError as exc:
        raise DispatchException(
            "Provisioning service returned a non-JSON response",
            category=DISPATCH_CATEGORY_INVALID_RESPONSE,
            retryable=False,
            status_code=response.status_code,
        ) from exc
    if not isinstance(payload, dict):
        raise DispatchException(
            "Provisioning service response must be a JSON object",
            category=DISPATCH_CATEGORY_INVALID_RESPONSE,
            retryable=False,
            status_code=response.status_code,
        )

    deployment_id = payload.get("deployment_id")
    if isinstance(deployment_id, int) and not isinstance(deployment_id, bool):
        deployment_id = str(deployment_id)
    if not isinstance(deployment_id, str) or not deployment_id.strip():
        raise DispatchException(
            "Provisioning service response is missing deployment_id",
            category=DISPATCH_CATEGORY_INVALID_RESPONSE,
            retryable=False,
            status_code=response.status_code,
        )
    initial_log_line = payload.get("initial_log_line")
    if not isinstance(initial_log_line, str) or not initial_log_line.strip():
        initial_log_line = None
    return ProvisioningAcceptance(deployment_id=deployment_id.strip(), initial_log_line=initial_log_line)


class ProvisioningClient:
    """HTTP client for the external provisioning service."""

    def __init__(self, *, base_url: str, timeout: float, transport: httpx.BaseTransport | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def submit(self, payload: dict[str, Any]) -> ProvisioningAcceptance:
        logger.info(
            "Submitting deployment name=%s target_mode=%s to provisioning service %s",
            payload.get("name"),
            payload.get("target_mode"),
            self._base_url,
        )
        try:
            with httpx.Client(base_url=self._base_url, timeout=self._timeout, transport=self._transport) as client:
                response = client.post("/deployments", json=payload)
        except httpx.TimeoutException as exc:
            raise DispatchException(
                f"Provisioning service did not answer within {self._timeout}s",
                category=DISPATCH_CATEGORY_TRANSPORT,
                retryable=True,
            ) from exc
        except httpx.TransportError as exc:
            raise DispatchException(
                f"Provisioning service is unreachable: {exc}",
                category=DISPATCH_CATEGORY_TRANSPORT,
                retryable=True,
            ) from exc

        if response.is_success:
            return parse_acceptance(response)
        raise DispatchException(
            f"Provisioning service rejected the deployment ({response.status_code}): {_response_detail(response)}",
            category=DISPATCH_CATEGORY_REJECTED,
            retryable=response.status_code in _RETRYABLE_STATUS_CODES,
            status_code=response.status_code,
        )


def build_provisioner(settings: Settings | None = None) -> ProvisioningClient:
    settings = settings or load_settings()
    return ProvisioningClient(base_url=settings.provisioner_url, timeout=settings.dispatch_timeout_sec)


def get_provisioner() -> ProvisioningClient:
    return build_provisioner()
