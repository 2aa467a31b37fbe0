"""Main entry point for the OpenAPI MCP Server."""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urljoin

import click
import httpx
from fastmcp import FastMCP

from . import __version__
from .config import Config
from .openapi_overlays import OverlayError, OverlayManager
from .openapi_overlays.overlay_manager import is_url, read_source
from .spec_manager import SpecError, SpecManager

# Set up logging
logger = logging.getLogger(__name__)
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


class OpenAPIMCPServer:
    """MCP server exposing the operations of an overlaid OpenAPI spec as tools."""

    def __init__(self, config: Config):
        """Initialize the server with configuration."""
        self.config = config
        self.spec_manager = SpecManager(self.config)
        self.client: Optional[httpx.AsyncClient] = None
        self.mcp: Optional[Any] = None  # Will be initialized in initialize()

    def _resolve_base_url(self, spec: Dict[str, Any]) -> str:
        """Pick the URL that tool calls are forwarded to."""
        if self.config.server.base_url:
            return self.config.server.base_url

        servers = spec.get("servers")
        first = servers[0] if isinstance(servers, list) and servers else None
        url = first.get("url") if isinstance(first, dict) else None
        if not url:
            raise SpecError(
                "Cannot determine target API URL. Either configure server.base_url "
                "or ensure the OpenAPI spec includes servers."
            )

        # Relative server URLs are relative to where the spec was fetched from
        if is_url(self.config.spec) and not is_url(url):
            url = urljoin(self.config.spec, url)
        logger.info(f"Using server URL from OpenAPI spec: {url}")
        return url

    async def initialize(self) -> None:
        """Process the spec and build the FastMCP server from it."""
        spec = await self.spec_manager.get_processed_spec()
        base_url = self._resolve_base_url(spec)

        self.client = httpx.AsyncClient(
            base_url=base_url,
            timeout=self.config.server.timeout,
            headers={
                "User-Agent": f"OpenAPI-MCP-Server/{__version__}",
                **self.config.server.headers,
            },
        )

        # FastMCP maps each operation to a tool and forwards calls through client
        self.mcp = FastMCP.from_openapi(
            openapi_spec=spec,
            client=self.client,
            name=self.config.server.name,
            instructions=self.config.server.instructions,
        )
        logger.info(f"MCP server '{self.config.server.name}' ready for {base_url}")

    async def run(self) -> None:
        """Run the MCP server."""
        await self.initialize()
        assert self.mcp is not None, "MCP server must be initialized first"

        try:
            await self.mcp.run_stdio_async(show_banner=False)
        finally:
            if self.client is not None:
                await self.client.aclose()


def _load_config(
    config_path: str, spec: Optional[str], overlays: Tuple[str, ...]
) -> Config:
    if Path(config_path).exists():
        config = Config.load(config_path)
    elif spec:
        config = Config(spec=spec)
    else:
        raise click.ClickException(
            f"Configuration file not found: {config_path} (pass --spec to run without one)"
        )

    if spec:
        config.spec = spec
    if overlays:
        config.overlays = list(overlays)
    return config


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
)
@click.version_option(__version__)
def main(log_level: str) -> None:
    """Expose an OpenAPI spec, adjusted by overlays, as MCP tools."""
    logging.getLogger().setLevel(log_level.upper())


@main.command()
@click.option(
    "--config", "-c", default="config/server.yaml", help="Configuration file path"
)
@click.option("--spec", "-s", default=None, help="OpenAPI spec path or URL")
@click.option(
    "--overlay",
    "-o",
    "overlays",
    multiple=True,
    help="Overlay path or URL (repeatable, applied in order)",
)
@click.option(
    "--check",
    is_flag=True,
    help="Load the spec and apply overlays without starting the server",
)
def serve(
    config: str, spec: Optional[str], overlays: Tuple[str, ...], check: bool
) -> None:
    """Start the MCP server over stdio."""
    server = OpenAPIMCPServer(_load_config(config, spec, overlays))

    async def _main() -> None:
        if check:
            processed = await server.spec_manager.get_processed_spec()
            click.echo(
                f"✅ Spec processed successfully: {len(processed.get('paths', {}))} path(s)",
                err=True,
            )
            return

        await server.run()

    try:
        asyncio.run(_main())
    except (SpecError, OverlayError) as e:
        raise click.ClickException(str(e)) from e


@main.command()
@click.option("--target", "-t", required=True, help="OpenAPI spec path or URL")
@click.option(
    "--overlay",
    "-o",
    "overlays",
    multiple=True,
    required=True,
    help="Overlay path or URL (repeatable, applied in order)",
)
@click.option("--yaml", "as_yaml", is_flag=True, help="Write YAML instead of JSON")
@click.option(
    "--output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write the result to a file instead of stdout",
)
def apply(
    target: str, overlays: Tuple[str, ...], as_yaml: bool, output: Optional[str]
) -> None:
    """Apply overlays to an OpenAPI spec and print the result."""
    manager = OverlayManager()

    async def _main() -> Any:
        content = await read_source(target)
        if content is None:
            raise click.ClickException(f"Spec file not found: {target}")
        document = manager.parse(content, target)

        loaded = []
        for location in overlays:
            overlay_text = await read_source(location)
            if overlay_text is None:
                raise click.ClickException(f"Overlay file not found: {location}")
            loaded.append((location, overlay_text))
        return manager.apply_all(document, loaded)

    try:
        document = asyncio.run(_main())
    except (OverlayError, httpx.HTTPError) as e:
        raise click.ClickException(str(e)) from e

    text = manager.serialize(document, as_yaml=as_yaml)
    if output:
        Path(output).write_text(text)
        click.echo(f"Wrote {output}", err=True)
    else:
        click.echo(text)


@main.command("init-overlay")
@click.argument("overlay_path")
@click.option("--title", required=True, help="Name of the API the overlay is for")
@click.option("--api-title", default=None, help="New title for the API")
@click.option("--server-url", default=None, help="Server URL to add to the spec")
@click.option(
    "--drop-deprecated", is_flag=True, help="Remove deprecated operations"
)
def init_overlay(
    overlay_path: str,
    title: str,
    api_title: Optional[str],
    server_url: Optional[str],
    drop_deprecated: bool,
) -> None:
    """Write an overlay template to OVERLAY_PATH."""
    asyncio.run(
        OverlayManager().create_overlay_template(
            overlay_path,
            title,
            api_title=api_title,
            server_url=server_url,
            drop_deprecated=drop_deprecated,
        )
    )
    click.echo(f"Created overlay template: {overlay_path}")


if __name__ == "__main__":
    main()
