"""
Pydantic configuration models for providers and polling.

Validates provider configs at initialization time instead of
silently passing bad values to SDK clients.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from pydantic import BaseModel, ConfigDict, Field, model_validator

# Lower bound for any sleep between two polls, so loops never spin.
MIN_POLL_INTERVAL = 0.1

DEFAULT_ZONE = "us-central1-f"


class PollingConfig(BaseModel):
    """Cadence and bounds for operation and predicate polling.

    ``backoff_factor`` of 1 gives a fixed interval; anything larger grows
    the interval geometrically up to ``max_interval``.
    """

    model_config = ConfigDict(extra="forbid")

    timeout: float = Field(default=600.0, ge=0, description="Seconds before giving up")
    interval: float = Field(
        default=2.0, ge=MIN_POLL_INTERVAL, description="Initial delay between polls"
    )
    max_interval: float = Field(default=30.0, description="Cap on the delay between polls")
    backoff_factor: float = Field(default=1.0, ge=1.0, description="Delay multiplier")
    max_poll_attempts: int = Field(
        default=5, ge=1, description="Attempts per poll before a transient error surfaces"
    )

    @model_validator(mode="after")
    def check_interval_cap(self) -> PollingConfig:
        """Ensure the cap is not below the starting interval."""
        if self.max_interval < self.interval:
            raise ValueError("max_interval must be greater than or equal to interval")
        return self


class GCPConfig(BaseModel):
    """Configuration for the GCP Compute Engine provider.

    Values are resolved in order:
    1. Explicit values passed in the config dict.
    2. Environment variables (GOOGLE_CLOUD_PROJECT, VMJACK_ZONE,
       GOOGLE_APPLICATION_CREDENTIALS).
    3. If neither is set, credentials are left as None so the GCP SDK can
       fall back to Application Default Credentials (ADC).
    """

    model_config = ConfigDict(extra="forbid")

    project_id: str | None = Field(default=None, description="GCP project ID")
    zone: str | None = Field(default=None, description="Compute zone (e.g. 'us-central1-f')")
    credentials: Any | None = Field(default=None, description="GCP credentials object")
    credentials_path: str | None = Field(
        default=None, description="Path to service account JSON key file"
    )
    polling: PollingConfig = Field(default_factory=PollingConfig)

    @model_validator(mode="before")
    @classmethod
    def resolve_from_env(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Fall back to environment variables for missing config."""
        if not values.get("project_id"):
            values["project_id"] = os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get(
                "GCLOUD_PROJECT"
            )
        if not values.get("zone"):
            values["zone"] = (
                os.environ.get("VMJACK_ZONE")
                or os.environ.get("CLOUDSDK_COMPUTE_ZONE")
                or DEFAULT_ZONE
            )
        if not values.get("credentials_path"):
            values["credentials_path"] = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
        return values

    @model_validator(mode="after")
    def validate_project_and_credentials(self) -> GCPConfig:
        """Ensure project_id is set and load credentials from path if needed."""
        if self.project_id is None:
            raise ValueError(
                "GCP project_id is required. Set it explicitly or via "
                "GOOGLE_CLOUD_PROJECT / GCLOUD_PROJECT environment variable."
            )
        if self.credentials is None and self.credentials_path:
            path = Path(self.credentials_path)
            if not path.exists():
                raise ValueError(f"Credentials file not found: {self.credentials_path}")
            from google.oauth2 import service_account  # lazy import

            self.credentials = service_account.Credentials.from_service_account_file(
                str(path)
            )
        return self


# Map provider names to their config models for dynamic validation
CONFIG_REGISTRY: dict[str, type[BaseModel]] = {
    "gcp": GCPConfig,
}


def validate_config(cloud_provider: str, config: dict) -> BaseModel:
    """Validate and return a typed config model for the given provider.

    Args:
        cloud_provider: The cloud provider name (e.g. 'gcp').
        config: Raw configuration dictionary.

    Returns:
        A validated Pydantic config model.

    Raises:
        ValueError: If the provider is unknown.
        pydantic.ValidationError: If the config is invalid.
    """
    model = CONFIG_REGISTRY.get(cloud_provider)
    if model is None:
        raise ValueError(f"No config model registered for provider: {cloud_provider}")
    return model(**config)


__all__ = [
    "MIN_POLL_INTERVAL",
    "DEFAULT_ZONE",
    "PollingConfig",
    "GCPConfig",
    "CONFIG_REGISTRY",
    "validate_config",
]
