"""
Typed configuration model with precedence-based loader.

Precedence (lowest to highest):
    defaults < config file (YAML) < profile < env vars < CLI flags
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from chatloop.ai import AI

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------

@dataclass
class AdapterConfig:
    """One OpenAI-compatible endpoint and the models it serves."""

    name: str = "openai"
    kind: str = "openai-compat"
    url: str = "https://api.openai.com/v1"
    api_key_env: str = "OPENAI_API_KEY"
    models: list[str] = field(default_factory=lambda: ["gpt-4o", "gpt-4o-mini"])
    timeout_seconds: int = 120
    max_retries: int = 2


@dataclass
class DefaultsConfig:
    adapter: str = "openai"
    model: str = "gpt-4o"
    max_iterations: int = 5


@dataclass
class LoggingConfig:
    level: str = "WARNING"


@dataclass
class ChatloopConfig:
    adapters: list[AdapterConfig] = field(default_factory=lambda: [AdapterConfig()])
    defaults: DefaultsConfig = field(default_factory=DefaultsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    profiles: dict[str, dict[str, Any]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Layering helpers
# ---------------------------------------------------------------------------

# env var -> (section, field, type)
_ENV_MAP: dict[str, tuple[str, str, type]] = {
    "CHATLOOP_DEFAULT_ADAPTER": ("defaults", "adapter", str),
    "CHATLOOP_DEFAULT_MODEL":   ("defaults", "model", str),
    "CHATLOOP_MAX_ITERATIONS":  ("defaults", "max_iterations", int),
    "CHATLOOP_LOG_LEVEL":       ("logging", "level", str),
}


def _merge(base: dict, overlay: dict) -> dict:
    """Overlay *overlay* onto *base*; nested mappings merge, anything else replaces."""
    out = dict(base)
    for key, value in overlay.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def _section(cls: type, raw: dict | None) -> Any:
    """Instantiate a section dataclass, dropping keys it does not declare."""
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in (raw or {}).items() if k in known})


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for env_var, (section, name, kind) in _ENV_MAP.items():
        value = os.environ.get(env_var)
        if value is not None:
            overrides[f"{section}.{name}"] = int(value) if kind is int else value
    return overrides


def _set(cfg: ChatloopConfig, dotpath: str, value: Any) -> None:
    section, _, name = dotpath.partition(".")
    setattr(getattr(cfg, section), name, value)


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> ChatloopConfig:
    """
    Build a ChatloopConfig by layering sources in precedence order.

    Parameters
    ----------
    config_path : path to YAML config file (optional; missing files are skipped)
    profile : name of a profile to overlay from the config file
    cli_overrides : ``"section.field" -> value`` pairs from CLI flags

    Raises ``ValueError`` if the result fails ``validate_config``.
    """
    raw: dict[str, Any] = {}
    if config_path is not None:
        path = Path(config_path).expanduser()
        if path.is_file():
            with path.open("r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}

    if profile:
        raw = _merge(raw, raw.get("profiles", {}).get(profile) or {})

    cfg = ChatloopConfig(
        defaults=_section(DefaultsConfig, raw.get("defaults")),
        logging=_section(LoggingConfig, raw.get("logging")),
        profiles=raw.get("profiles", {}),
    )
    if "adapters" in raw:
        cfg.adapters = [_section(AdapterConfig, entry) for entry in raw["adapters"] or []]

    # Env vars first so CLI flags win.
    for dotpath, value in {**_env_overrides(), **(cli_overrides or {})}.items():
        _set(cfg, dotpath, value)

    validate_config(cfg)
    return cfg


def validate_config(cfg: ChatloopConfig) -> None:
    """Raise ``ValueError`` describing the first problem found."""
    if cfg.defaults.max_iterations < 1:
        raise ValueError(
            f"defaults.max_iterations must be >= 1, got {cfg.defaults.max_iterations}"
        )
    seen: set[str] = set()
    for a in cfg.adapters:
        if a.kind != "openai-compat":
            raise ValueError(f"Adapter {a.name!r}: unknown kind {a.kind!r}")
        if not isinstance(a.models, list) or not all(
            isinstance(m, str) for m in a.models
        ):
            raise ValueError(
                f"Adapter {a.name!r}: models must be a list of model ids, "
                f"got {a.models!r}"
            )
        if not a.models:
            raise ValueError(f"Adapter {a.name!r} declares no models")
        if a.name in seen:
            raise ValueError(f"Adapter {a.name!r} configured twice")
        seen.add(a.name)


def build_ai(cfg: ChatloopConfig) -> AI:
    """Instantiate every configured adapter and return the ``AI`` facade."""
    from chatloop.ai import AI
    from chatloop.llm.adapters.openai_compat import OpenAICompatAdapter

    adapters = {}
    for a in cfg.adapters:
        api_key = os.environ.get(a.api_key_env, "") if a.api_key_env else ""
        if not api_key:
            logger.info("No API key in $%s for adapter %s", a.api_key_env, a.name)
        adapters[a.name] = OpenAICompatAdapter(
            url=a.url,
            models=a.models,
            api_key=api_key,
            timeout=float(a.timeout_seconds),
            max_retries=a.max_retries,
            adapter_name=a.name,
        )
    return AI(adapters)
