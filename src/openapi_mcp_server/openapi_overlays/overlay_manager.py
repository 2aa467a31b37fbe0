"""OpenAPI overlay management functionality."""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import aiofiles
import httpx
import yaml
from pydantic import ValidationError as PydanticValidationError

from .exceptions import (
    ActionApplicationError,
    OverlayError,
    ParseError,
    ValidationError,
)
from .merge import apply_legacy_overlay, deep_merge
from .models import (
    LEGACY_KEYS,
    LegacyOverlay,
    OverlayAction,
    OverlayDocument,
    is_formal,
)
from .targets import Target

logger = logging.getLogger(__name__)

Overlay = Union[str, Dict[str, Any], OverlayDocument, LegacyOverlay]


def is_url(location: str) -> bool:
    return location.startswith(("http://", "https://"))


async def read_source(
    location: str, http_client: Optional[httpx.AsyncClient] = None
) -> Optional[str]:
    """Read text from a local file or an http(s) URL.

    Returns None when a local file does not exist. HTTP failures propagate
    as ``httpx.HTTPError``.
    """
    if is_url(location):
        logger.debug(f"Fetching {location}")
        if http_client is not None:
            response = await http_client.get(location)
        else:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                response = await client.get(location)
        response.raise_for_status()
        return response.text

    path = Path(location)
    if not path.exists():
        return None
    async with aiofiles.open(path, "r") as f:
        return await f.read()


def _format_errors(error: PydanticValidationError) -> List[str]:
    problems = []
    for item in error.errors():
        loc = ".".join(str(part) for part in item["loc"]) or "<root>"
        problems.append(f"{loc}: {item['msg']}")
    return problems


class OverlayManager:
    """Manages OpenAPI overlay loading, validation, and application."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None) -> None:
        """Initialize the overlay manager.

        Args:
            http_client: Client used for overlays given as URLs. A short-lived
                client is created per fetch when omitted.
        """
        self.http_client = http_client
        self.overlays_cache: Dict[str, Dict[str, Any]] = {}

    def parse(self, text: str, source: Optional[str] = None) -> Any:
        """Parse JSON or YAML text.

        Text whose first non-blank character is ``{`` or ``[`` is read as
        JSON, anything else as YAML. A YAML flow document starting with one
        of those characters is therefore read as JSON.

        Args:
            text: Raw document text
            source: File path or URL, used in error messages

        Raises:
            ParseError: If the text is not valid in the detected format
        """
        stripped = text.strip()
        if stripped.startswith(("{", "[")):
            try:
                return json.loads(stripped)
            except json.JSONDecodeError as e:
                raise ParseError(f"Invalid JSON: {e}", source) from e
        try:
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ParseError(f"Invalid YAML: {e}", source) from e

    def validate(
        self, overlay: Any, source: Optional[str] = None
    ) -> Union[OverlayDocument, LegacyOverlay]:
        """Check an overlay's structure and return its model.

        Overlays carrying an ``overlay`` (or ``version``) key are validated as
        OpenAPI Overlay Specification 1.0.0 documents. Anything else is
        accepted as a legacy overlay as long as it has at least one section
        that can modify an OpenAPI document.

        Raises:
            ValidationError: If the overlay cannot be applied
        """
        if isinstance(overlay, (OverlayDocument, LegacyOverlay)):
            return overlay
        if not isinstance(overlay, dict):
            raise ValidationError(
                f"Overlay must be a mapping, got {type(overlay).__name__}", source
            )

        if is_formal(overlay):
            try:
                return OverlayDocument.model_validate(overlay)
            except PydanticValidationError as e:
                raise ValidationError(
                    "Invalid overlay document", source, _format_errors(e)
                ) from e

        logger.warning(
            f"{source or 'Overlay'} uses the legacy overlay format, "
            "not compliant with OpenAPI Overlay Specification 1.0.0"
        )
        if not any(overlay.get(key) is not None for key in LEGACY_KEYS):
            raise ValidationError(
                "Overlay doesn't contain any valid OpenAPI modification properties",
                source,
            )
        try:
            return LegacyOverlay.model_validate(overlay)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid legacy overlay", source, _format_errors(e)
            ) from e

    def apply(self, target: Any, overlay: Overlay, source: Optional[str] = None) -> Any:
        """Apply an overlay to a target document.

        The target is deep-copied first; the caller's object is never
        modified. Actions run in order and each one sees the result of the
        previous ones. An action that fails is logged and skipped.

        Args:
            target: OpenAPI document, parsed or as JSON/YAML text
            overlay: Overlay document, parsed, validated or as text
            source: Overlay file path or URL, used in log and error messages

        Returns:
            The modified copy of the target

        Raises:
            ParseError: If the target or overlay text cannot be parsed
            ValidationError: If the overlay is structurally invalid
        """
        if isinstance(overlay, str):
            overlay = self.parse(overlay, source)
        validated = self.validate(overlay, source)

        if isinstance(target, str):
            target = self.parse(target)
        document = copy.deepcopy(target)

        if isinstance(validated, LegacyOverlay):
            if not isinstance(document, dict):
                raise ValidationError(
                    "Legacy overlays can only be merged into a mapping", source
                )
            return apply_legacy_overlay(document, validated)

        for index, action in enumerate(validated.actions):
            try:
                document = self._apply_action(document, action, index)
            except Exception as e:
                error = (
                    e
                    if isinstance(e, ActionApplicationError)
                    else ActionApplicationError(str(e), index, action.target)
                )
                if source:
                    logger.warning(f"Skipping action in overlay {source}: {error}")
                else:
                    logger.warning(f"Skipping overlay action: {error}")
        return document

    def apply_all(
        self,
        target: Any,
        overlays: Iterable[Union[Overlay, Tuple[str, Overlay]]],
        strict: bool = True,
    ) -> Any:
        """Apply overlays one after another.

        Each overlay sees the document produced by the previous one, so later
        overlays may target nodes introduced by earlier ones.

        Args:
            target: OpenAPI document, parsed or as JSON/YAML text
            overlays: Overlays, or ``(source, overlay)`` pairs to name them in
                log and error messages
            strict: When False, an overlay that fails to parse or validate is
                logged and skipped instead of raising
        """
        document = target
        for item in overlays:
            source, overlay = item if isinstance(item, tuple) else (None, item)
            try:
                document = self.apply(document, overlay, source=source)
            except OverlayError as e:
                if strict:
                    raise
                logger.error(
                    f"Failed to apply overlay {source or ''}. Continuing without it: {e}"
                )
                continue
            if source:
                logger.info(f"Applied overlay: {source}")
        return document

    def _apply_action(self, document: Any, action: OverlayAction, index: int) -> Any:
        matches = Target(action.target).find(document)
        if not matches:
            logger.debug(f"Overlay action {index} target {action.target} matched nothing")
            return document

        if action.remove:
            if any(match.parent is None for match in matches):
                raise ActionApplicationError(
                    "cannot remove the document root", index, action.target
                )
            # Highest index first keeps sibling indices valid while deleting
            for match in sorted(
                matches,
                key=lambda m: m.key if isinstance(m.parent, list) else -1,
                reverse=True,
            ):
                del match.parent[match.key]
            logger.debug(f"Removed {len(matches)} node(s) matching {action.target}")
            return document

        if not action.has_update:
            return document

        update = action.update
        for match in matches:
            if isinstance(match.value, dict) and not isinstance(update, dict):
                raise ActionApplicationError(
                    f"cannot merge {type(update).__name__} into object at "
                    f"{match.normalized_path}",
                    index,
                    action.target,
                )

        for match in matches:
            if isinstance(match.value, list):
                match.value.append(copy.deepcopy(update))
            elif isinstance(match.value, dict):
                deep_merge(match.value, update)
            elif match.parent is None:
                document = copy.deepcopy(update)
            else:
                match.parent[match.key] = copy.deepcopy(update)
        logger.debug(f"Updated {len(matches)} node(s) matching {action.target}")
        return document

    @staticmethod
    def serialize(document: Any, as_yaml: bool = False) -> str:
        """Serialize a document as pretty-printed JSON or as YAML."""
        if as_yaml:
            return yaml.safe_dump(
                document, sort_keys=False, allow_unicode=True, width=120
            )
        return json.dumps(document, indent=2, ensure_ascii=False)

    async def load_overlay(self, location: str) -> Optional[Dict[str, Any]]:
        """Load an overlay from disk or from a URL.

        Args:
            location: Path to the overlay file, or an http(s) URL

        Returns:
            Loaded overlay dictionary or None if the file doesn't exist

        Raises:
            ParseError: If the overlay text cannot be parsed
            ValidationError: If the overlay is structurally invalid
        """
        content = await read_source(location, self.http_client)
        if content is None:
            logger.warning(f"Overlay file not found: {location}")
            return None

        overlay = self.parse(content, location)
        self.validate(overlay, location)

        # Cache the overlay
        self.overlays_cache[location] = overlay
        logger.info(f"Loaded overlay: {location}")
        return overlay

    async def create_overlay_template(
        self,
        overlay_path: str,
        title: str,
        api_title: Optional[str] = None,
        server_url: Optional[str] = None,
        drop_deprecated: bool = False,
    ) -> None:
        """Create a basic overlay template for an API.

        Args:
            overlay_path: Path where the overlay file should be created
            title: Name of the API the overlay is for
            api_title: Title to give the API in the overlaid document
            server_url: Server to append to the document's servers
            drop_deprecated: Add an action removing deprecated operations
        """
        path = Path(overlay_path)

        actions: List[Dict[str, Any]] = [
            {
                "target": "$.info",
                "update": {"title": api_title or title},
            }
        ]
        if server_url:
            actions.append(
                {
                    "target": "$.servers",
                    "update": {"url": server_url, "description": f"{title} server"},
                }
            )
        if drop_deprecated:
            actions.append(
                {
                    "target": "$.paths.*[?(@.deprecated == true)]",
                    "description": "Do not expose deprecated operations as tools",
                    "remove": True,
                }
            )

        overlay = {
            "overlay": "1.0.0",
            "info": {
                "title": f"Overlay for {title}",
                "version": "1.0.0",
                "description": f"Overlay spec to adjust the {title} API",
            },
            "actions": actions,
        }

        # Ensure directory exists
        path.parent.mkdir(parents=True, exist_ok=True)

        async with aiofiles.open(path, "w") as f:
            await f.write(yaml.dump(overlay, default_flow_style=False, sort_keys=False))

    def get_cached_overlay(self, overlay_path: str) -> Optional[Dict[str, Any]]:
        """Get a cached overlay by path.

        Args:
            overlay_path: Path to the overlay file

        Returns:
            Cached overlay or None if not found
        """
        return self.overlays_cache.get(overlay_path)

    def clear_cache(self) -> None:
        """Clear the overlay cache."""
        self.overlays_cache.clear()
