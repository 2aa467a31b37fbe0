"""Package initialization for openapi_mcp_server."""

__version__ = "0.1.0"
__description__ = "MCP server exposing OpenAPI operations as tools, with overlay support"

from .config import Config
from .openapi_overlays import OverlayManager
from .spec_manager import SpecManager

__all__ = [
    "Config",
    "OverlayManager",
    "SpecManager",
]
