from __future__ import annotations

from dataclasses import dataclass
import os

from authordeploy.services.constants import (
    DEFAULT_DISPATCH_TIMEOUT_SECONDS,
    RECONCILE_INTERVAL_SECONDS,
    STALE_THRESHOLD_SECONDS,
)

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    provisioner_url: str
    dispatch_timeout_sec: float
    tracker_interval_sec: float
    run_tracker: bool


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings() -> Settings:
    dispatch_timeout = _float_env("AUTHORDEPLOY_DISPATCH_TIMEOUT_SEC", DEFAULT_DISPATCH_TIMEOUT_SECONDS)
    # A dispatch that outlives the staleness threshold would be swept before it is even persisted.
    if dispatch_timeout >= STALE_THRESHOLD_SECONDS:
        raise ValueError(
            f"AUTHORDEPLOY_DISPATCH_TIMEOUT_SEC must be below {STALE_THRESHOLD_SECONDS}s, got {dispatch_timeout}"
        )
    return Settings(
        provisioner_url=os.getenv("AUTHORDEPLOY_PROVISIONER_URL", "http://localhost:8080"),
        dispatch_timeout_sec=dispatch_timeout,
        tracker_interval_sec=_float_env("AUTHORDEPLOY_TRACKER_INTERVAL_SEC", RECONCILE_INTERVAL_SECONDS),
        run_tracker=os.getenv("AUTHORDEPLOY_RUN_TRACKER", "").strip().lower() in _TRUTHY,
    )
