"""Manages the lifecycle of the OpenAPI specification.

This module is responsible for loading the configured OpenAPI document,
applying overlays to it in order, and checking that the result still
describes operations that can be exposed as MCP tools.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
from openapi_spec_validator import validate

from .config import Config
from .openapi_overlays import OverlayError, OverlayManager
from .openapi_overlays.merge import HTTP_METHODS
from .openapi_overlays.overlay_manager import read_source

logger = logging.getLogger(__name__)


class SpecError(ValueError):
    """Raised when the OpenAPI spec cannot be loaded or used."""


def validate_openapi_spec(spec: Any) -> None:
    """Check that a spec has the elements needed to build tools.

    Raises:
        SpecError: If a required element is missing
    """
    if not spec or not isinstance(spec, dict):
        raise SpecError("OpenAPI specification is empty or not a mapping")

    if not spec.get("openapi"):
        raise SpecError(
            "Missing OpenAPI version identifier. "
            "This doesn't appear to be a valid OpenAPI spec."
        )

    if not spec.get("info"):
        raise SpecError("Missing info section in OpenAPI spec")

    paths = spec.get("paths")
    if not paths or not isinstance(paths, dict):
        raise SpecError(
            "No paths defined in OpenAPI spec. There are no operations to expose as tools."
        )

    for path_item in paths.values():
        if not isinstance(path_item, dict):
            continue
        for method, operation in path_item.items():
            if method.lower() in HTTP_METHODS and operation:
                logger.debug("OpenAPI specification validation passed")
                return

    raise SpecError("No valid operations found in any path. Cannot create tools.")


class SpecManager:
    """Loads the OpenAPI spec and applies the configured overlays."""

    def __init__(
        self, config: Config, http_client: Optional[httpx.AsyncClient] = None
    ):
        self.config = config
        self.http_client = http_client
        self.overlay_manager = OverlayManager(http_client)

    async def load_document(self, location: str) -> Dict[str, Any]:
        """Load an OpenAPI document from a file path or URL."""
        logger.info(f"Loading OpenAPI spec from: {location}")
        try:
            content = await read_source(location, self.http_client)
        except httpx.HTTPError as e:
            logger.error(f"HTTP error fetching spec from {location}: {e}")
            raise SpecError(f"Failed to fetch spec from {location}: {e}") from e

        if content is None:
            raise SpecError(f"Spec file not found: {location}")

        try:
            spec = self.overlay_manager.parse(content, location)
        except OverlayError as e:
            logger.error(f"Error parsing OpenAPI spec: {e}")
            raise SpecError(str(e)) from e

        if not isinstance(spec, dict):
            raise SpecError(f"OpenAPI spec at {location} is not a mapping")

        info = spec.get("info") or {}
        logger.info(
            f"Successfully loaded spec: {info.get('title')} v{info.get('version')}"
        )
        return spec

    async def apply_overlays(self, spec: Dict[str, Any]) -> Dict[str, Any]:
        """Apply every configured overlay to the spec, one after another.

        A broken overlay is logged and skipped unless ``strict_overlays`` is
        set, in which case the error propagates.
        """
        strict = self.config.strict_overlays
        loaded: List[Tuple[str, Dict[str, Any]]] = []
        for location in self.config.overlays:
            try:
                overlay = await self.overlay_manager.load_overlay(location)
                if overlay is None:
                    raise FileNotFoundError(f"Overlay file not found: {location}")
            except (OverlayError, OSError, httpx.HTTPError) as e:
                if strict:
                    raise
                logger.error(
                    f"Failed to load overlay {location}. Continuing without it: {e}"
                )
                continue
            loaded.append((location, overlay))

        return self.overlay_manager.apply_all(spec, loaded, strict=strict)

    async def get_processed_spec(self) -> Dict[str, Any]:
        """Load the spec, apply overlays, validate, and optionally save it."""
        spec = await self.load_document(self.config.spec)

        if self.config.overlays:
            logger.info(f"Applying {len(self.config.overlays)} overlay(s)...")
            spec = await self.apply_overlays(spec)

        validate_openapi_spec(spec)

        if self.config.validate_spec:
            try:
                validate(spec)
            except Exception as e:
                logger.error(f"OpenAPI validation failed: {e}")
                raise SpecError(f"Processed spec is not valid OpenAPI: {e}") from e

        if self.config.output.processed_spec_path:
            self.save_processed_spec(spec, self.config.output.processed_spec_path)

        return spec

    def save_processed_spec(self, spec: Dict[str, Any], spec_path: str) -> None:
        """Save the processed spec as JSON or YAML, chosen by file extension."""
        path = Path(spec_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        as_yaml = path.suffix.lower() in (".yaml", ".yml")
        with open(path, "w") as f:
            f.write(self.overlay_manager.serialize(spec, as_yaml=as_yaml))
        logger.info(f"Saved processed spec to {path}")
