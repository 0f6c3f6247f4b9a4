"""
ExactPilot configuration management.

Supports loading from YAML files, environment variables, and keyword overrides.
The four connection values (API base URL, client id, client secret and
redirect URI) are required; a missing one is a startup failure.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from exactpilot.errors import ConfigError

_ENV_FIELDS = {
    "api": "EXACTPILOT_API",
    "client_id": "EXACTPILOT_CLIENT_ID",
    "client_secret": "EXACTPILOT_CLIENT_SECRET",
    "redirect_uri": "EXACTPILOT_REDIRECT_URI",
    "data_dir": "EXACTPILOT_DATA_DIR",
    "timeout": "EXACTPILOT_TIMEOUT",
}


class ExactPilotConfig(BaseModel):
    """Root configuration for ExactPilot."""

    api: str = Field(description="API base URL, e.g. https://start.exactonline.nl/api")
    client_id: str = Field(min_length=1)
    client_secret: str = Field(min_length=1)
    redirect_uri: str = Field(min_length=1)

    verify_tls: bool = Field(
        default=True,
        description="Validate the provider's TLS certificate chain",
    )
    timeout: float = Field(default=60.0, gt=0, description="HTTP timeout in seconds")
    data_dir: str | None = Field(
        default=None,
        description="Directory for tokens.json (default: ~/.exactpilot)",
    )

    @field_validator("api")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("api must not be empty")
        return value

    @classmethod
    def load(cls, config_path: str | None = None, **overrides: Any) -> ExactPilotConfig:
        """Load configuration from file, env vars, and overrides.

        Priority: overrides > env vars > config file > defaults.

        Raises:
            ConfigError: If a required value is missing or invalid.
        """
        data: dict[str, Any] = {}

        # 1. Load from YAML file if provided
        if config_path:
            path = Path(config_path)
            if path.exists():
                with open(path) as f:
                    data = yaml.safe_load(f) or {}

        # 2. Override from environment variables
        for key, env_name in _ENV_FIELDS.items():
            value = os.environ.get(env_name)
            if value:
                data[key] = value

        env_verify = os.environ.get("EXACTPILOT_VERIFY_TLS")
        if env_verify:
            data["verify_tls"] = env_verify.lower() not in ("0", "false", "no")

        # 3. Apply keyword overrides
        data.update(overrides)

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err["loc"])
            raise ConfigError(f"Invalid or missing configuration: {fields}") from e

    def resolve_data_dir(self) -> Path:
        """Resolve and create the private per-user data directory.

        Raises:
            ConfigError: If the home directory cannot be resolved or the
                directory cannot be created.
        """
        try:
            data_dir = Path(self.data_dir).expanduser() if self.data_dir else Path.home() / ".exactpilot"
        except RuntimeError as e:
            raise ConfigError(f"Failed to get home directory: {e}") from e

        try:
            data_dir.mkdir(parents=True, exist_ok=True)
            data_dir.chmod(0o700)
        except OSError as e:
            raise ConfigError(f"Failed to create data directory {data_dir}: {e}") from e
        return data_dir
