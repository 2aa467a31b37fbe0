#!/usr/bin/env python3
"""
Example script demonstrating OpenAPI MCP Server functionality.

This script shows how to:
1. Load configuration
2. Apply overlays to the Petstore spec
3. Inspect which operations will become MCP tools
4. Apply a one-off overlay without touching any files
"""

import asyncio
from pathlib import Path

from openapi_mcp_server.config import Config
from openapi_mcp_server.openapi_overlays import OverlayManager
from openapi_mcp_server.openapi_overlays.merge import HTTP_METHODS
from openapi_mcp_server.spec_manager import SpecManager


async def main():
    """Run the example."""
    print("🚀 OpenAPI MCP Server Example")
    print("=" * 40)

    # Load configuration
    print("\n📋 Loading configuration...")
    config = Config.load("config/server.yaml")
    print(f"✅ Spec: {config.spec}")

    print("\n🔧 Overlay Processing:")
    for location in config.overlays:
        status = "✅" if Path(location).exists() else "❌"
        print(f"   {status} {location}")

    spec = await SpecManager(config).get_processed_spec()
    print(f"\n📘 {spec['info']['title']} v{spec['info']['version']}")

    print("\n🛠️  Operations exposed as tools:")
    for path, path_item in spec["paths"].items():
        for method, operation in path_item.items():
            if method in HTTP_METHODS:
                print(f"   - {operation.get('operationId')}: {method.upper()} {path}")

    # Overlays can also be applied in memory
    overlay = {
        "overlay": "1.0.0",
        "info": {"title": "Demo", "version": "1.0.0"},
        "actions": [{"target": "$.servers", "update": {"url": "http://localhost:8080"}}],
    }
    local = OverlayManager().apply(spec, overlay)
    print("\n🌐 Servers after the in-memory overlay:")
    for server in local["servers"]:
        print(f"   - {server['url']}")

    print("\n🎉 Example completed!")
    print("\nTo try the real functionality:")
    print("1. Point config/server.yaml at your API spec")
    print("2. Run: openapi-mcp-server serve --check")
    print("3. Run: openapi-mcp-server serve")


if __name__ == "__main__":
    asyncio.run(main())
