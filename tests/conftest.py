"""Test fixtures and configuration."""

import json
import os
from pathlib import Path

import pytest

from openapi_mcp_server.openapi_overlays import OverlayManager

FIXTURES = Path(__file__).parent / "fixtures"


@pytest.fixture(scope="session", autouse=True)
def test_environment():
    """Set up test environment."""
    # Ensure we're in the right directory
    original_cwd = os.getcwd()
    repo_root = Path(__file__).parent.parent
    os.chdir(repo_root)

    yield

    # Cleanup
    os.chdir(original_cwd)


@pytest.fixture
def petstore_spec():
    """The Petstore OpenAPI document, freshly parsed for each test."""
    return json.loads((FIXTURES / "petstore-openapi.json").read_text())


@pytest.fixture
def overlay_manager():
    """Create overlay manager instance."""
    return OverlayManager()


def make_overlay(*actions):
    """Build a formal overlay document around the given actions."""
    return {
        "overlay": "1.0.0",
        "info": {"title": "Test Overlay", "version": "1.0.0"},
        "actions": list(actions),
    }


@pytest.fixture
def overlay_factory():
    """Factory for formal overlay documents."""
    return make_overlay
