from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

import json5
import yaml

from .adapters import adapter_class
from .errors import ConfigError

log = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "sprig.yaml"
HOME_CONFIG_FILE = Path.home() / ".sprig.yaml"
DEFAULT_MODEL = "openai:gpt-4o"


@dataclass(frozen=True)
class Settings:
    model: str = DEFAULT_MODEL
    api_key: str | None = None
    api_key_env_var: str | None = None
    endpoint: str | None = None
    temperature: float = 0.2
    max_tokens: int | None = None
    timeout_seconds: float = 120.0
    max_rate_limit_retries: int = 5
    backoff_seconds: float = 1.0
    max_apply_retries: int = 3
    max_continuations: int = 3
    auto_accept: bool = False
    silent: bool = False
    files: tuple[str, ...] = field(default_factory=tuple)


def as_non_empty_str(v) -> str | None:
    if isinstance(v, str):
        s = v.strip()
        return s or None
    return None


def env_non_empty(name: str | None) -> str | None:
    return as_non_empty_str(os.getenv(name or ""))


def coerce_int(v) -> int | None:
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float) and v.is_integer():
        return int(v)
    if isinstance(v, str):
        s = v.strip()
        return int(s) if s.isdigit() else None
    return None


def coerce_float(v) -> float | None:
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str):
        try:
            return float(v.strip())
        except ValueError:
            return None
    return None


def coerce_bool(v) -> bool | None:
    if isinstance(v, bool):
        return v
    if isinstance(v, str) and v.strip().lower() in ("true", "yes", "1", "false", "no", "0"):
        return v.strip().lower() in ("true", "yes", "1")
    return None


def load_config_file(path: Path) -> dict:
    suffix = (path.suffix or "").lower()
    try:
        with path.open("r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) if suffix in (".yaml", ".yml") else json5.load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    return loaded if isinstance(loaded, dict) else {}


def find_config_file(explicit: Path | None = None, base_dir: Path | None = None) -> Path | None:
    if explicit is not None:
        if not explicit.exists():
            raise ConfigError(f"Config file not found: {explicit}")
        return explicit

    local = (base_dir or Path.cwd()) / DEFAULT_CONFIG_FILE
    if local.exists():
        return local
    return HOME_CONFIG_FILE if HOME_CONFIG_FILE.exists() else None


def settings_from_dict(raw: dict) -> Settings:
    defaults = Settings()

    def pick(key: str, coerce, default):
        v = coerce(raw.get(key))
        return default if v is None else v

    files = raw.get("files")
    # $SPRIG_MODEL beats the file; --model beats both
    model = as_non_empty_str(os.getenv("SPRIG_MODEL")) or as_non_empty_str(raw.get("model")) or DEFAULT_MODEL

    return Settings(
        model=model,
        api_key_env_var=as_non_empty_str(raw.get("api_key_env_var")),
        endpoint=as_non_empty_str(raw.get("endpoint")),
        temperature=pick("temperature", coerce_float, defaults.temperature),
        max_tokens=coerce_int(raw.get("max_tokens")),
        timeout_seconds=pick("timeout_seconds", coerce_float, defaults.timeout_seconds),
        max_rate_limit_retries=pick("max_rate_limit_retries", coerce_int, defaults.max_rate_limit_retries),
        backoff_seconds=pick("backoff_seconds", coerce_float, defaults.backoff_seconds),
        max_apply_retries=pick("max_apply_retries", coerce_int, defaults.max_apply_retries),
        max_continuations=pick("max_continuations", coerce_int, defaults.max_continuations),
        auto_accept=pick("auto_accept", coerce_bool, defaults.auto_accept),
        silent=pick("silent", coerce_bool, defaults.silent),
        files=tuple(filter(None, map(as_non_empty_str, files))) if isinstance(files, list) else (),
    )


def resolve_api_key(settings: Settings) -> Settings:
    env_var = settings.api_key_env_var or adapter_class(settings.model).api_key_env_var
    api_key = env_non_empty(env_var) or env_non_empty("SPRIG_API_KEY")
    if env_var and not api_key:
        log.warning("No API key found in $%s", env_var)
    return replace(settings, api_key=api_key, api_key_env_var=env_var)


def load_settings(path: Path | None = None, base_dir: Path | None = None, **overrides) -> Settings:
    config_path = find_config_file(path, base_dir)
    raw = load_config_file(config_path) if config_path is not None else {}
    if config_path is not None:
        log.debug("Loaded config from %s", config_path)

    settings = settings_from_dict(raw)
    given = {k: v for k, v in overrides.items() if v is not None}
    if given:
        settings = replace(settings, **given)
    return resolve_api_key(settings)
