"""Errors raised while parsing, validating and applying overlays."""

from typing import List, Optional


class OverlayError(Exception):
    """Base class for overlay failures."""

    def __init__(self, message: str, source: Optional[str] = None):
        self.source = source
        if source:
            message = f"{source}: {message}"
        super().__init__(message)


class ParseError(OverlayError):
    """Raised when text is neither valid JSON nor valid YAML."""


class ValidationError(OverlayError):
    """Raised when an overlay document is structurally invalid.

    Nothing is applied when this is raised.
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        problems: Optional[List[str]] = None,
    ):
        self.problems = problems or []
        if self.problems:
            message = message + "\n" + "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(message, source)


class ActionApplicationError(OverlayError):
    """Raised for a single action that cannot be applied.

    The overlay manager catches it, logs it and moves on to the next action.
    """

    def __init__(self, message: str, index: int, target: str):
        self.index = index
        self.target = target
        super().__init__(f"action {index} ({target}): {message}")
