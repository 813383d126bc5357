"""Plugin autodiscovery: every ``endpoint.py`` below this package exposes a router."""

import importlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fastapi import APIRouter, FastAPI
from structlog import get_logger

logger = get_logger(__name__)

PLUGINS_ROOT = Path(__file__).parent


@dataclass
class Plugin:
    name: str
    router: APIRouter
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def prefix(self) -> str:
        return f"/{self.name}"

    @property
    def version(self) -> str:
        return self.metadata.get("version", "1.0.0")


def plugin_name_for(endpoint_file: Path, root: Path = PLUGINS_ROOT) -> str:
    return endpoint_file.parent.relative_to(root).as_posix()


def load_plugin(name: str) -> Plugin | None:
    """Import ``plugins.<name>.endpoint`` and wrap its router, or None if it has none."""
    module_path = "plugins." + name.replace("/", ".")
    endpoint_module = importlib.import_module(f"{module_path}.endpoint")

    router = getattr(endpoint_module, "router", None)
    if not isinstance(router, APIRouter):
        logger.warning("No valid router found for plugin", plugin=name)
        return None

    package = importlib.import_module(module_path)
    metadata = dict(getattr(package, "PLUGIN_METADATA", {}))
    return Plugin(name=name, router=router, metadata=metadata)


def discover_plugins(
    excluded_plugins: list[str] | None = None, root: Path = PLUGINS_ROOT
) -> list[Plugin]:
    excluded = set(excluded_plugins or [])
    plugins = []
    for endpoint_file in sorted(root.rglob("endpoint.py")):
        name = plugin_name_for(endpoint_file, root)
        if name in excluded:
            logger.info("Skipping excluded plugin", plugin=name)
            continue
        if any(part.startswith("_") for part in name.split("/")):
            continue
        plugin = load_plugin(name)
        if plugin:
            plugins.append(plugin)
    return plugins


def init_plugins(app: FastAPI, excluded_plugins: list[str] | None = None) -> None:
    """Discover all plugins and mount their routers under ``/<plugin path>``."""
    plugins = discover_plugins(excluded_plugins)
    for plugin in plugins:
        app.include_router(
            plugin.router, prefix=plugin.prefix, tags=[plugin.name.title()]
        )
        logger.info(
            "Registered plugin routes", plugin=plugin.name, version=plugin.version
        )

    logger.info("Plugin system initialized", count=len(plugins))
