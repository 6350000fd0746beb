"""Registry of brain backends keyed by type name."""

from __future__ import annotations

import importlib
import logging
import os
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from ganglia.brains.base import BrainClient
from ganglia.errors import UnknownBackendKind

logger = logging.getLogger("ganglia.brains")

BrainFactory = Callable[[Mapping[str, Any]], Awaitable[BrainClient]]
"""Async constructor receiving the backend's settings section."""

DEFAULT_BRAIN_TYPE = "openclaw"


class BrainConfig(BaseModel):
    """Backend selection: ``{"type": name, name: {endpoint, token, ...}}``.

    Example::

        BrainConfig.model_validate(
            {"type": "nanoclaw", "nanoclaw": {"endpoint": "http://localhost:18789"}}
        )
    """

    model_config = ConfigDict(extra="allow")

    type: str

    def settings(self) -> dict[str, Any]:
        """The settings section keyed by :attr:`type`, or ``{}``."""
        section = (self.model_extra or {}).get(self.type)
        if section is None:
            return {}
        if isinstance(section, BaseModel):
            return section.model_dump()
        return dict(section)


class BrainRegistry:
    """Maps backend type names to async factories.

    Populate once at start-up, then treat as read-only.  Registering a
    name twice replaces the earlier factory; creating an unregistered
    type raises :class:`UnknownBackendKind` and never falls back.
    Tests build their own instance instead of touching
    :data:`default_registry`.
    """

    def __init__(self) -> None:
        self._factories: dict[str, BrainFactory] = {}

    def register(self, type_name: str, factory: BrainFactory) -> None:
        if type_name in self._factories:
            logger.info("Replacing brain factory: %s", type_name)
        else:
            logger.info("Registered brain: %s", type_name)
        self._factories[type_name] = factory

    def unregister(self, type_name: str) -> bool:
        return self._factories.pop(type_name, None) is not None

    def is_available(self, type_name: str) -> bool:
        return type_name in self._factories

    def list_types(self) -> set[str]:
        return set(self._factories)

    async def create(self, config: BrainConfig | Mapping[str, Any]) -> BrainClient:
        """Build a brain for ``config.type``.

        Raises:
            UnknownBackendKind: If no factory is registered for the type.
        """
        if not isinstance(config, BrainConfig):
            config = BrainConfig.model_validate(dict(config))
        factory = self._factories.get(config.type)
        if factory is None:
            raise UnknownBackendKind(config.type, self._factories)
        brain = await factory(config.settings())
        logger.info("Created %s brain (model=%s)", brain.label(), brain.model)
        return brain


def _lazy_factory(module: str, client_cls: str, config_cls: str) -> BrainFactory:
    """Factory that imports its backend module on first use."""

    async def factory(settings: Mapping[str, Any]) -> BrainClient:
        mod = importlib.import_module(module)
        config = getattr(mod, config_cls).model_validate(dict(settings))
        client: BrainClient = getattr(mod, client_cls)(config)
        return client

    return factory


BUILTIN_BRAINS: dict[str, tuple[str, str, str]] = {
    "openclaw": ("ganglia.brains.openclaw", "OpenClawBrain", "OpenClawConfig"),
    "nanoclaw": ("ganglia.brains.nanoclaw", "NanoclawBrain", "NanoclawConfig"),
}


def register_builtin_brains(registry: BrainRegistry) -> None:
    for type_name, (module, client_cls, config_cls) in BUILTIN_BRAINS.items():
        registry.register(type_name, _lazy_factory(module, client_cls, config_cls))


def create_default_registry() -> BrainRegistry:
    """A fresh registry with the built-in backends registered."""
    registry = BrainRegistry()
    register_builtin_brains(registry)
    return registry


default_registry = create_default_registry()
"""Process-wide registry used when callers do not inject their own."""


def brain_config_from_env(environ: Mapping[str, str] | None = None) -> BrainConfig:
    """Build a :class:`BrainConfig` from environment variables.

    ``GANGLIA_TYPE`` (or legacy ``BRAIN_TYPE``) selects the backend;
    ``OPENCLAW_GATEWAY_URL``/``OPENCLAW_API_KEY`` and
    ``NANOCLAW_URL``/``NANOCLAW_CHANNEL_PREFIX`` fill its section.
    """
    env = os.environ if environ is None else environ
    type_name = env.get("GANGLIA_TYPE") or env.get("BRAIN_TYPE") or DEFAULT_BRAIN_TYPE

    sections: dict[str, dict[str, Any]] = {}
    if type_name == "openclaw":
        section: dict[str, Any] = {}
        if env.get("OPENCLAW_GATEWAY_URL"):
            section["endpoint"] = env["OPENCLAW_GATEWAY_URL"]
        if env.get("OPENCLAW_API_KEY"):
            section["token"] = env["OPENCLAW_API_KEY"]
        sections["openclaw"] = section
    elif type_name == "nanoclaw":
        section = {}
        if env.get("NANOCLAW_URL"):
            section["endpoint"] = env["NANOCLAW_URL"]
        if env.get("NANOCLAW_CHANNEL_PREFIX"):
            section["channel_prefix"] = env["NANOCLAW_CHANNEL_PREFIX"]
        sections["nanoclaw"] = section

    return BrainConfig.model_validate({"type": type_name, **sections})


async def create_brain(
    config: BrainConfig | Mapping[str, Any] | None = None,
    *,
    registry: BrainRegistry | None = None,
) -> BrainClient:
    """Create a brain from *config*, or from the environment when omitted."""
    if config is None:
        config = brain_config_from_env()
    return await (registry or default_registry).create(config)
