"""Runtime settings read from the environment."""

import os
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConfigurationError

ENV_PREFIX = "KYOTO_TRANSIT_"


class Settings(BaseModel):
    """Effective configuration for services, CLI and MCP server."""

    data_dir: Path = Field(Path("data"), description="Reference data root")
    base_url: str = Field(
        "https://arukumachikyoto.jp", description="Upstream route search site"
    )
    timeout: float = Field(30, gt=0, description="Request timeout in seconds")
    retries: int = Field(3, ge=1, description="Fetch attempts before giving up")
    log_level: str = Field("WARNING", description="Root logger level")
    token_encoding: str = Field(
        "cl100k_base", description="tiktoken encoding used for max_tokens"
    )

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        """Build settings from ``KYOTO_TRANSIT_*`` variables.

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        try:
            return cls(**values)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def describe(self) -> dict[str, str]:
        """Settings as display strings, keyed by environment variable."""
        return {
            f"{ENV_PREFIX}{name.upper()}": str(value)
            for name, value in self.model_dump().items()
        }
