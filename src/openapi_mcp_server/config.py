"""Configuration management for the OpenAPI MCP Server.

This module handles loading and validating the server's configuration,
which names the OpenAPI document to expose, the overlays to apply to it (in
order), and how the MCP server reaches the real API.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


class ServerConfig(BaseModel):
    """Settings for the MCP server and its HTTP client."""

    name: str = Field(default="OpenAPI MCP Server", description="MCP server name")
    instructions: Optional[str] = Field(
        default=None, description="Instructions advertised to MCP clients"
    )
    base_url: Optional[str] = Field(
        default=None,
        description="Target API base URL; defaults to the first server in the spec",
    )
    timeout: float = Field(default=30.0, description="HTTP timeout in seconds")
    headers: Dict[str, str] = Field(
        default_factory=dict, description="Headers sent with every API request"
    )


class OutputConfig(BaseModel):
    """Output configuration."""

    processed_spec_path: Optional[str] = Field(
        default=None, description="Where to save the spec after overlays"
    )


class Config(BaseModel):
    """Main configuration class."""

    config_path: Optional[str] = Field(
        default=None, description="Path to the loaded config file"
    )
    spec: str = Field(..., description="Path or URL of the OpenAPI spec")
    overlays: List[str] = Field(
        default_factory=list,
        description="Overlay paths or URLs, applied in order",
    )
    strict_overlays: bool = Field(
        default=False, description="Fail instead of skipping a broken overlay"
    )
    validate_spec: bool = Field(
        default=False,
        description="Validate the processed spec with openapi-spec-validator",
    )
    server: ServerConfig = Field(default_factory=ServerConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @field_validator("overlays", mode="before")
    @classmethod
    def _split_overlays(cls, value: Any) -> Any:
        # Back-compat: a single comma-separated string
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @classmethod
    def load(cls, config_path: str) -> "Config":
        """Load configuration from a YAML (or JSON) file."""
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, "r") as f:
            config_data = yaml.safe_load(f)

        if not isinstance(config_data, dict):
            raise ValueError(f"Invalid configuration in {config_path}: {config_data}")

        config = cls(**config_data)
        config.config_path = config_path
        return config

    def save(self, config_path: str) -> None:
        """Save configuration to a YAML file."""
        path = Path(config_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        # Convert to dict for YAML serialization
        config_dict = self.model_dump(exclude={"config_path"})

        with open(path, "w") as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
