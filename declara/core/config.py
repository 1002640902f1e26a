"""
Declara Configuration Management
================================

Layered settings for message locales, code generation and logging.

Layers, later ones winning:
1. Built-in defaults
2. Layers added with add_source(), ordered by priority
3. Environment variables (DECLARA_*)
4. Runtime overrides (config.set)

Keys:
    messages.locale     Locale used when formatting failure messages ("en")
    messages.fallback   Locale tried when a template is missing ("en")
    codegen.dump        Log generated validation source at info level (False)
    logging.level       Default level of package loggers ("WARNING")
    logging.format      "text" or "json" ("text")

Example:
    # DECLARA_MESSAGES_LOCALE=fr python app.py
    locale = get_config().get("messages.locale")  # "fr"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, TypeVar, Union

import orjson

T = TypeVar("T")

ENV_PREFIX = "DECLARA_"

ENV_PRIORITY = 100
RUNTIME_PRIORITY = 1000

DEFAULTS: Dict[str, Any] = {
    "messages": {
        "locale": "en",
        "fallback": "en",
    },
    "codegen": {
        "dump": False,
    },
    "logging": {
        "level": "WARNING",
        "format": "text",
    },
}

_TRUE = ("true", "yes", "on")
_FALSE = ("false", "no", "off")


@dataclass
class ConfigSource:
    """One named layer of settings."""
    name: str
    data: Dict[str, Any] = field(default_factory=dict)
    priority: int = 0


def _copy(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: _copy(v) if isinstance(v, Mapping) else v for k, v in data.items()}


def _overlay(target: Dict[str, Any], layer: Mapping[str, Any]) -> None:
    """Write a layer over target, merging sections key by key."""
    for key, value in layer.items():
        if isinstance(value, Mapping):
            existing = target.get(key)
            if not isinstance(existing, dict):
                existing = target[key] = {}
            _overlay(existing, value)
        else:
            target[key] = value


def _assign(data: Dict[str, Any], key: str, value: Any) -> None:
    *sections, leaf = key.split(".")
    for section in sections:
        data = data.setdefault(section, {})
    data[leaf] = value


def coerce_env_value(raw: str) -> Any:
    """
    Turn an environment string into a setting.

    Boolean words, integers, floats and JSON objects or arrays are
    recognized; anything else stays a string.
    """
    lowered = raw.lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False

    for number in (int, float):
        try:
            return number(raw)
        except ValueError:
            continue

    if raw.startswith(("{", "[")):
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            return raw
    return raw


class Config:
    """
    Configuration container.

    Example:
        config = Config()
        config.set("messages.locale", "fr")
        config.get("messages.locale")           # "fr"
        config.get("messages.missing", "x")     # "x"
    """

    def __init__(self, load_env: bool = True) -> None:
        self._sources: List[ConfigSource] = []
        self._resolved: Optional[Dict[str, Any]] = None
        self._lookups: Dict[str, Any] = {}

        self.add_source("defaults", _copy(DEFAULTS), priority=0)
        if load_env:
            self.load_environment(os.environ)

    def load_environment(self, environ: Mapping[str, str]) -> None:
        """Add a layer from DECLARA_<SECTION>_<KEY> variables."""
        layer: Dict[str, Any] = {}
        for name, raw in environ.items():
            if not name.startswith(ENV_PREFIX):
                continue
            # DECLARA_MESSAGES_LOCALE -> messages.locale
            key = name[len(ENV_PREFIX):].lower().replace("_", ".")
            _assign(layer, key, coerce_env_value(raw))

        if layer:
            self.add_source("environment", layer, priority=ENV_PRIORITY)

    def add_source(self, name: str, data: Dict[str, Any], priority: int = 0) -> None:
        """Add a layer; higher priorities override lower ones."""
        self._sources.append(ConfigSource(name=name, data=data, priority=priority))
        self._invalidate()

    def _invalidate(self) -> None:
        self._resolved = None
        self._lookups.clear()

    def _settings(self) -> Dict[str, Any]:
        if self._resolved is None:
            resolved: Dict[str, Any] = {}
            for source in sorted(self._sources, key=lambda s: s.priority):
                _overlay(resolved, source.data)
            self._resolved = resolved
        return self._resolved

    def get(self, key: str, default: T = None) -> Union[Any, T]:
        """
        Look up a dotted key such as ``messages.locale``.

        Returns the default when any part of the path is missing.
        """
        if key in self._lookups:
            return self._lookups[key]

        node: Any = self._settings()
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]

        self._lookups[key] = node
        return node

    def get_int(self, key: str, default: int = 0) -> int:
        try:
            return int(self.get(key, default))
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = self.get(key, default)
        if isinstance(value, str):
            return value.lower() in _TRUE + ("1",)
        return bool(value)

    def set(self, key: str, value: Any) -> None:
        """Override a key at runtime, above every other layer."""
        runtime = next((s for s in self._sources if s.name == "runtime"), None)
        if runtime is None:
            runtime = ConfigSource(name="runtime", priority=RUNTIME_PRIORITY)
            self._sources.append(runtime)
        _assign(runtime.data, key, value)
        self._invalidate()

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def all(self) -> Dict[str, Any]:
        """Copy of every resolved setting."""
        return _copy(self._settings())

    def section(self, prefix: str) -> Dict[str, Any]:
        """Copy of the settings below a prefix, empty when it is not a section."""
        value = self.get(prefix)
        return _copy(value) if isinstance(value, dict) else {}

    def __contains__(self, key: str) -> bool:
        return self.has(key)


_config: Optional[Config] = None


def get_config() -> Config:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> Config:
    """Discard the global configuration and reload it from the environment."""
    global _config
    _config = Config()
    return _config
