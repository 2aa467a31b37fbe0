"""Pydantic models for overlay documents.

Two shapes are recognised. Formal overlays follow the OpenAPI Overlay
Specification 1.0.0 (a version, an ``info`` block and an ordered list of
JSONPath actions). Legacy overlays are plain fragments of an OpenAPI document
that get merged structurally.
"""

from typing import Any, Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    model_validator,
)

# Top-level keys that mark a document as a legacy overlay
LEGACY_KEYS = ("info", "paths", "components", "tags", "servers")

# Either spelling marks a document as a formal overlay
VERSION_KEYS = ("overlay", "version")


class _Extensible(BaseModel):
    model_config = ConfigDict(extra="allow")

    @property
    def extensions(self) -> Dict[str, Any]:
        """Specification extensions (``x-`` keys) carried by this object."""
        extra = self.model_extra or {}
        return {k: v for k, v in extra.items() if k.startswith("x-")}


class OverlayInfo(_Extensible):
    """Overlay metadata."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    title: str
    version: str
    description: Optional[str] = None


class OverlayAction(_Extensible):
    """A single JSONPath-targeted update or removal."""

    target: StrictStr = Field(
        ..., min_length=1, description="JSONPath selecting target nodes"
    )
    description: Optional[str] = None
    update: Any = Field(default=None, description="Value merged into each match")
    remove: Optional[StrictBool] = Field(
        default=None, description="Delete each match when true"
    )

    @model_validator(mode="after")
    def _require_directive(self) -> "OverlayAction":
        if "update" not in self.model_fields_set and (
            "remove" not in self.model_fields_set
        ):
            raise ValueError("Each action must have either update or remove property")
        if "remove" in self.model_fields_set and self.remove is None:
            raise ValueError("Action remove property must be a boolean")
        return self

    @property
    def has_update(self) -> bool:
        # An explicit ``update: null`` still counts
        return "update" in self.model_fields_set


class OverlayDocument(_Extensible):
    """A formal overlay document."""

    version: StrictStr = Field(
        ...,
        validation_alias=AliasChoices("overlay", "version"),
        description="Overlay specification version, e.g. 1.0.0",
    )
    info: OverlayInfo
    extends: Optional[str] = None
    actions: List[OverlayAction]


class LegacyOverlay(_Extensible):
    """A plain structural patch merged into the target document."""

    info: Optional[Dict[str, Any]] = None
    paths: Optional[Dict[str, Any]] = None
    components: Optional[Dict[str, Any]] = None
    tags: Optional[List[Dict[str, Any]]] = None
    servers: Optional[List[Dict[str, Any]]] = None


def is_formal(document: Dict[str, Any]) -> bool:
    """Return True when a raw overlay carries a version key."""
    return any(key in document for key in VERSION_KEYS)
