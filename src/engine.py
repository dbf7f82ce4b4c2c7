"""Protocol engine factory for warden.

The wire protocol lives outside this project. The engine and the chat-side
collaborators (command router, call and group handlers) are named by import
path, "package.module:attribute", so a deployment can plug in whichever
implementation it runs.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Optional

from core.ports import CALL, GROUP_PARTICIPANTS_UPDATE, MESSAGES_UPSERT, EnginePort, PluginHandler

# config.json plugin names mapped to the event category they receive.
PLUGIN_CATEGORIES = {
    "message_router": MESSAGES_UPSERT,
    "call_handler": CALL,
    "group_update_handler": GROUP_PARTICIPANTS_UPDATE,
}


def load_object(path: str) -> Any:
    """Resolve "package.module:attribute" to the object it names."""

    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise RuntimeError(f"Expected 'module:attribute', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise RuntimeError(f"Cannot import {module_name!r} for {path!r}") from exc
    target: Any = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise RuntimeError(f"{path!r} does not exist") from exc
    return target


def build_engine(engine_path: Optional[str]) -> EnginePort:
    """Create the protocol engine from its factory path.

    The factory is called without arguments and must return an object with an
    async ``connect(options, on_event)``.
    """

    # Fail fast on a missing engine to avoid a connect loop that can never succeed.
    if not engine_path:
        raise RuntimeError("Missing ENGINE in environment or config.json")

    logging.getLogger(__name__).info("Initializing protocol engine %s", engine_path)

    factory = load_object(engine_path)
    # Classes and factory functions are called; a ready instance is used as is.
    if isinstance(factory, type) or (callable(factory) and not hasattr(factory, "connect")):
        engine = factory()
    else:
        engine = factory
    if not hasattr(engine, "connect"):
        raise RuntimeError(f"{engine_path!r} did not produce an engine with connect()")
    return engine


def load_plugins(config: dict) -> dict[str, list[PluginHandler]]:
    """Load configured collaborators, grouped by event category."""

    plugins: dict[str, list[PluginHandler]] = {}
    for name, path in (config or {}).items():
        if not path:
            continue
        category = PLUGIN_CATEGORIES.get(name)
        if category is None:
            raise RuntimeError(f"Unknown plugin {name!r}; expected one of {sorted(PLUGIN_CATEGORIES)}")
        handler = load_object(path)
        if not callable(handler):
            raise RuntimeError(f"Plugin {name!r} at {path!r} is not callable")
        plugins.setdefault(category, []).append(handler)
        logging.getLogger(__name__).info("Loaded %s from %s", name, path)
    return plugins
