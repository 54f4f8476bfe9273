"""Release configuration: YAML loading and build option merging."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from src.image_release.models import BuilderKind, BuildOptions, RegistryTarget
from src.shared.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class ReleaseConfig:
    """Parsed release configuration file.

    ``build`` holds partial :class:`BuildOptions` values (the dynamic
    configuration layer); ``deploy`` holds branch deployer settings.
    """

    build: dict[str, Any] = field(default_factory=dict)
    deploy: dict[str, Any] = field(default_factory=dict)
    credentials_root: str | None = None
    cache_path: str | None = None


def load_release_config(path: Path | str | None = None) -> ReleaseConfig:
    """Load release configuration from a YAML file.

    Missing sections fall back to defaults.  Unknown keys are silently
    ignored so that forward-compatible config files work.

    Args:
        path: Path to config YAML.  If ``None`` or the file does not
              exist, returns full defaults.
    """
    if path is None:
        return ReleaseConfig()

    path = Path(path)
    if not path.exists():
        return ReleaseConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Release config {path} must be a mapping")

    build = raw.get("build") or {}
    deploy = raw.get("deploy") or {}
    if not isinstance(build, dict) or not isinstance(deploy, dict):
        raise ConfigurationError(
            f"Sections 'build' and 'deploy' in {path} must be mappings"
        )
    return ReleaseConfig(
        build=build,
        deploy=deploy,
        credentials_root=raw.get("credentials_root"),
        cache_path=raw.get("cache_path"),
    )


def parse_registry(raw: Any) -> RegistryTarget:
    """Build a :class:`RegistryTarget` from a URL string or a mapping."""
    if isinstance(raw, RegistryTarget):
        return raw
    if isinstance(raw, str):
        return RegistryTarget(url=raw)
    if isinstance(raw, Mapping):
        valid = {f.name for f in dataclasses.fields(RegistryTarget)}
        # "user" is accepted as an alias of "username".
        data = {k: v for k, v in raw.items() if k in valid}
        if "username" not in data and "user" in raw:
            data["username"] = raw["user"]
        if "url" not in data:
            raise ConfigurationError(f"Registry entry without 'url': {dict(raw)}")
        return RegistryTarget(**data)
    raise ConfigurationError(f"Unsupported registry entry: {raw!r}")


def _coerce(name: str, value: Any) -> Any:
    if name == "builder":
        try:
            return BuilderKind(value)
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown builder '{value}'; expected one of "
                f"{', '.join(k.value for k in BuilderKind)}"
            ) from exc
    if name == "registries":
        if isinstance(value, (str, Mapping)):
            value = [value]
        return [parse_registry(r) for r in value]
    if name == "builder_args":
        return [str(a) for a in value]
    return value


def merge_build_options(*layers: Mapping[str, Any] | BuildOptions | None) -> BuildOptions:
    """Merge option layers into one :class:`BuildOptions`.

    Layers are applied in order, so later layers win: typically
    ``defaults``, then the explicit registration, then dynamic
    configuration.  Within a layer only keys naming a ``BuildOptions`` field
    and holding a non-``None`` value take effect; lists replace, they are
    never concatenated.  A legacy single ``registry`` key (with optional
    ``user``/``password``) is folded into ``registries``.

    Raises:
        ConfigurationError: On an unknown builder or malformed registry.
    """
    field_names = [f.name for f in dataclasses.fields(BuildOptions)]
    merged: dict[str, Any] = {}
    for layer in layers:
        if layer is None:
            continue
        if isinstance(layer, BuildOptions):
            values: Mapping[str, Any] = {
                name: getattr(layer, name) for name in field_names
            }
        else:
            values = _fold_legacy_registry(layer)
        for key, value in values.items():
            if key not in field_names:
                logger.debug("Ignoring unknown build option '%s'", key)
                continue
            if value is None:
                continue
            merged[key] = _coerce(key, value)
    return BuildOptions(**merged)


def _fold_legacy_registry(layer: Mapping[str, Any]) -> Mapping[str, Any]:
    if "registry" not in layer or "registries" in layer:
        return layer
    values = dict(layer)
    registry = values.pop("registry")
    user = values.pop("user", None)
    password = values.pop("password", None)
    if registry is None:
        return values
    values["registries"] = [
        {"url": registry, "username": user, "password": password}
    ]
    return values
