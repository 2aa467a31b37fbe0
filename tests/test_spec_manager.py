"""Test spec manager functionality."""

import json
from unittest.mock import patch

import httpx
import pytest
import yaml

from openapi_mcp_server.config import Config
from openapi_mcp_server.openapi_overlays import ValidationError
from openapi_mcp_server.spec_manager import SpecError, SpecManager, validate_openapi_spec

PETSTORE = "tests/fixtures/petstore-openapi.json"


@pytest.fixture
def config():
    """Load test configuration."""
    return Config.load("config/server.yaml")


@pytest.fixture
def spec_manager(config):
    """Create spec manager instance."""
    return SpecManager(config)


def test_spec_manager_init(spec_manager):
    """Test SpecManager initialization."""
    assert spec_manager is not None
    assert spec_manager.config is not None
    assert spec_manager.overlay_manager is not None


@pytest.mark.asyncio
async def test_processed_spec_applies_overlays_in_order(spec_manager):
    spec = await spec_manager.get_processed_spec()

    info = spec["info"]
    assert info["title"] == "Modified Petstore API"
    assert info["version"] == "1.1.0"
    assert "x-internal-notes" not in info
    # Added by the legacy overlay, applied second
    assert info["contact"] == {"name": "Petstore Team"}

    list_pets = spec["paths"]["/pets"]["get"]
    assert list_pets["summary"] == "List all pets with overlay"
    assert list_pets["parameters"][0]["description"] == (
        "Maximum number of pets to return (at most 100)"
    )
    assert list_pets["parameters"][0]["schema"]["type"] == "integer"

    pet_id = spec["paths"]["/pets/{petId}"]["get"]["parameters"][0]
    assert pet_id["schema"] == {"type": "integer", "format": "int64"}
    assert "delete" not in spec["paths"]["/pets/{petId}"]


@pytest.mark.asyncio
async def test_overlays_applied_in_one_pass(spec_manager):
    overlay_manager = spec_manager.overlay_manager

    with patch.object(
        overlay_manager, "apply_all", wraps=overlay_manager.apply_all
    ) as apply_all:
        await spec_manager.get_processed_spec()

    apply_all.assert_called_once()
    sources = [source for source, _ in apply_all.call_args.args[1]]
    assert sources == [
        "overlays/petstore-overlay.yaml",
        "overlays/petstore-legacy-overlay.yaml",
    ]
    assert apply_all.call_args.kwargs == {"strict": False}


@pytest.mark.asyncio
async def test_broken_overlay_is_skipped(tmp_path):
    broken = tmp_path / "broken.yaml"
    broken.write_text('overlay: "1.0.0"\ninfo: {title: T, version: "1"}\n')
    good = tmp_path / "good.yaml"
    good.write_text(
        'overlay: "1.0.0"\ninfo: {title: T, version: "1"}\n'
        "actions:\n  - target: $.info.title\n    update: Good\n"
    )
    missing = tmp_path / "missing.yaml"
    config = Config(spec=PETSTORE, overlays=[str(broken), str(missing), str(good)])

    spec = await SpecManager(config).get_processed_spec()

    assert spec["info"]["title"] == "Good"


@pytest.mark.asyncio
async def test_broken_overlay_strict(tmp_path):
    broken = tmp_path / "broken.yaml"
    broken.write_text('overlay: "1.0.0"\ninfo: {title: T, version: "1"}\n')
    config = Config(spec=PETSTORE, overlays=[str(broken)], strict_overlays=True)

    with pytest.raises(ValidationError):
        await SpecManager(config).get_processed_spec()


@pytest.mark.asyncio
async def test_missing_overlay_strict(tmp_path):
    config = Config(
        spec=PETSTORE, overlays=[str(tmp_path / "missing.yaml")], strict_overlays=True
    )

    with pytest.raises(FileNotFoundError):
        await SpecManager(config).get_processed_spec()


@pytest.mark.asyncio
async def test_spec_and_overlay_from_url(petstore_spec):
    overlay = {
        "overlay": "1.0.0",
        "info": {"title": "Remote", "version": "1.0.0"},
        "actions": [{"target": "$.info.title", "update": "Remote Petstore"}],
    }

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/openapi.yaml":
            return httpx.Response(200, text=yaml.safe_dump(petstore_spec))
        if request.url.path == "/overlay.json":
            return httpx.Response(200, json=overlay)
        return httpx.Response(404)

    config = Config(
        spec="https://api.example.com/openapi.yaml",
        overlays=["https://api.example.com/overlay.json"],
    )
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        spec = await SpecManager(config, http_client=client).get_processed_spec()

    assert spec["info"]["title"] == "Remote Petstore"


@pytest.mark.asyncio
async def test_spec_fetch_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    config = Config(spec="https://api.example.com/openapi.yaml")
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(SpecError, match="Failed to fetch"):
            await SpecManager(config, http_client=client).get_processed_spec()


@pytest.mark.asyncio
async def test_missing_spec_file(tmp_path):
    config = Config(spec=str(tmp_path / "missing.yaml"))

    with pytest.raises(SpecError, match="not found"):
        await SpecManager(config).get_processed_spec()


@pytest.mark.asyncio
async def test_unparseable_spec(tmp_path):
    spec_path = tmp_path / "openapi.json"
    spec_path.write_text('{"openapi": ')

    with pytest.raises(SpecError, match="Invalid JSON"):
        await SpecManager(Config(spec=str(spec_path))).get_processed_spec()


@pytest.mark.asyncio
async def test_openapi_validation_enabled():
    config = Config(spec=PETSTORE, validate_spec=True)

    spec = await SpecManager(config).get_processed_spec()

    assert spec["info"]["title"] == "Petstore API"


@pytest.mark.asyncio
async def test_openapi_validation_failure():
    config = Config(spec=PETSTORE, validate_spec=True)

    with patch(
        "openapi_mcp_server.spec_manager.validate", side_effect=Exception("bad spec")
    ):
        with pytest.raises(SpecError, match="bad spec"):
            await SpecManager(config).get_processed_spec()


@pytest.mark.asyncio
async def test_processed_spec_is_saved(tmp_path):
    output = tmp_path / "out" / "processed.json"
    config = Config(
        spec=PETSTORE,
        overlays=["overlays/petstore-overlay.yaml"],
        output={"processed_spec_path": str(output)},
    )

    spec = await SpecManager(config).get_processed_spec()

    assert json.loads(output.read_text()) == spec


def test_save_processed_spec_yaml(spec_manager, tmp_path, petstore_spec):
    path = tmp_path / "processed.yaml"

    spec_manager.save_processed_spec(petstore_spec, str(path))

    assert yaml.safe_load(path.read_text()) == petstore_spec


@pytest.mark.parametrize(
    "spec, message",
    [
        (None, "empty"),
        ({"info": {}, "paths": {}}, "Missing OpenAPI version"),
        ({"openapi": "3.0.3", "paths": {"/a": {"get": {}}}}, "Missing info"),
        ({"openapi": "3.0.3", "info": {"title": "T"}, "paths": {}}, "No paths"),
        (
            {"openapi": "3.0.3", "info": {"title": "T"}, "paths": {"/a": {"summary": "x"}}},
            "No valid operations",
        ),
    ],
)
def test_validate_openapi_spec_errors(spec, message):
    with pytest.raises(SpecError, match=message):
        validate_openapi_spec(spec)


def test_validate_openapi_spec_passes(petstore_spec):
    validate_openapi_spec(petstore_spec)
