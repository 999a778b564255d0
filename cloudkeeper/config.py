"""Controller configuration and TOML loading.

The controller never reads process-wide state: everything it needs is in
a ControllerConfig passed at construction. Configs can be written by hand
or loaded from ~/.cloudkeeper/defaults.toml (global) and cloudkeeper.toml
(project), which are merged with the project file winning.

Example cloudkeeper.toml:

    [providers.aws-east]
    type = "aws"
    region = "us-east-1"

    [controllers.volumes]
    provider = "aws-east"
    zone = "us-east-1a"

    [controllers.volumes.describe_retry]
    max_attempts = 5
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cloudkeeper.constants import Tag
from cloudkeeper.core.exceptions import ConfigurationError
from cloudkeeper.retry import RetryPolicy

if TYPE_CHECKING:
    from cloudkeeper.providers.aws.config import AWS
    from cloudkeeper.providers.memory import Memory

    type ProviderConfig = AWS | Memory

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".cloudkeeper" / "defaults.toml"
PROJECT_CONFIG_NAME = "cloudkeeper.toml"


@dataclass(frozen=True, slots=True)
class ControllerConfig:
    """Settings of a LifecycleController.

    Args:
        zone: Availability zone new resources are created in.
        tag_key: Provider tag holding the identity. Default: "Name".
        describe_retry: Backoff for discovery reads. Writes are never retried.
    """

    zone: str
    tag_key: str = Tag.NAME
    describe_retry: RetryPolicy = field(default_factory=RetryPolicy)

    def __post_init__(self) -> None:
        if not self.zone:
            raise ConfigurationError("zone must not be empty")
        if not self.tag_key:
            raise ConfigurationError("tag_key must not be empty")


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("providers", {})
    merged.setdefault("controllers", {})
    return merged


def _get_provider_map() -> dict[str, type]:
    from cloudkeeper.providers.aws.config import AWS
    from cloudkeeper.providers.memory import Memory

    return {
        "aws": AWS,
        "memory": Memory,
    }


def _build(cls: type, raw: RawConfig, what: str) -> Any:
    try:
        return cls(**raw)
    except TypeError as e:
        raise ConfigurationError(f"Invalid {what}: {e}") from e


def _build_provider(name: str, raw: RawConfig) -> ProviderConfig:
    raw = dict(raw)
    provider_type = raw.pop("type", None)
    if provider_type is None:
        raise ConfigurationError(f"Provider '{name}' missing 'type' field")

    provider_map = _get_provider_map()
    cls = provider_map.get(provider_type)
    if cls is None:
        raise ConfigurationError(
            f"Unknown provider type '{provider_type}'. "
            f"Valid: {', '.join(provider_map)}"
        )
    return _build(cls, raw, f"provider '{name}'")


def resolve_controller(
    name: str,
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> tuple[ControllerConfig, ProviderConfig]:
    """Resolve a named [controllers.<name>] section and its provider."""
    config = load_config(project_dir=project_dir, global_path=global_path)

    controllers = config["controllers"]
    if name not in controllers:
        raise ConfigurationError(
            f"Controller '{name}' not found. Available: {', '.join(controllers) or 'none'}"
        )

    raw = dict(controllers[name])

    provider_ref = raw.pop("provider", None)
    if provider_ref is None:
        raise ConfigurationError(f"Controller '{name}' missing 'provider' field")

    providers = config["providers"]
    if provider_ref not in providers:
        raise ConfigurationError(
            f"Provider '{provider_ref}' not found. Available: {', '.join(providers) or 'none'}"
        )

    provider = _build_provider(provider_ref, providers[provider_ref])

    raw_retry = raw.pop("describe_retry", None)
    if raw_retry is not None:
        try:
            raw["describe_retry"] = _build(RetryPolicy, raw_retry, f"describe_retry of '{name}'")
        except ValueError as e:
            raise ConfigurationError(f"Invalid describe_retry of '{name}': {e}") from e

    return _build(ControllerConfig, raw, f"controller '{name}'"), provider
