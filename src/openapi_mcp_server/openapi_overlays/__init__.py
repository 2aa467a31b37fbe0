"""OpenAPI overlay functionality for modifying OpenAPI specifications.

This package provides utilities for loading, validating, and applying
overlays to OpenAPI specifications. Overlays are used to adjust an API spec
before its operations are exposed as MCP tools.
"""

from .exceptions import (
    ActionApplicationError,
    OverlayError,
    ParseError,
    ValidationError,
)
from .models import LegacyOverlay, OverlayAction, OverlayDocument, OverlayInfo
from .overlay_manager import OverlayManager
from .targets import Match, Target, TargetError

__all__ = [
    "ActionApplicationError",
    "LegacyOverlay",
    "Match",
    "OverlayAction",
    "OverlayDocument",
    "OverlayError",
    "OverlayInfo",
    "OverlayManager",
    "ParseError",
    "Target",
    "TargetError",
    "ValidationError",
]
