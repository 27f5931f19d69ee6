"""Load settings.yaml into typed dataclasses. Checks API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"
USER_SETTINGS_PATH = Path.home() / ".adversarial-mirror" / "settings.yaml"
SETTINGS_ENV = "MIRROR_SETTINGS"

SDKS = ("anthropic", "openai", "gemini", "mock")
INTENSITIES = ("mild", "moderate", "aggressive")


class ConfigError(ValueError):
    """Raised when settings.yaml has invalid or inconsistent values."""


@dataclass
class ModelConfig:
    name: str
    sdk: str
    model: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None
    temperature: float | None = None


@dataclass
class SessionConfig:
    original: str
    challenger: str
    judge: str
    intensity: str = "moderate"
    judge_enabled: bool = True
    auto_classify: bool = True
    history_window: int = 20
    persona: str | None = None


@dataclass
class ClassifierConfig:
    backend: str
    model: str
    confidence_threshold: float = 0.75


@dataclass
class HistoryConfig:
    path: Path
    max_entries: int = 200


@dataclass
class AppConfig:
    session: SessionConfig
    models: dict[str, ModelConfig]
    classifier: ClassifierConfig
    history: HistoryConfig
    available_providers: set[str] = field(default_factory=set)
    source: Path | None = None


def resolve_settings_path() -> Path:
    """$MIRROR_SETTINGS, then the user settings file, then the bundled default."""
    override = os.environ.get(SETTINGS_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    if USER_SETTINGS_PATH.exists():
        return USER_SETTINGS_PATH
    return _SETTINGS_PATH


def _parse_model(name: str, model_raw: dict[str, Any]) -> ModelConfig:
    sdk = str(model_raw["sdk"])
    if sdk not in SDKS:
        raise ConfigError(f"Model '{name}': unknown sdk '{sdk}' (expected one of {', '.join(SDKS)})")
    temperature = model_raw.get("temperature")
    return ModelConfig(
        name=name,
        sdk=sdk,
        model=str(model_raw["model"]),
        api_key_env=str(model_raw.get("api_key_env", "")),
        timeout_sec=int(model_raw.get("timeout_sec", 120)),
        max_tokens=int(model_raw.get("max_tokens", 4096)),
        base_url=model_raw.get("base_url"),
        temperature=float(temperature) if temperature is not None else None,
    )


def parse_config(raw: dict[str, Any], source: Path | None = None) -> AppConfig:
    """Build and validate an AppConfig from a raw settings mapping.

    Raises:
        ConfigError: On unknown sdk/intensity or references to missing models.
        KeyError: If a required section or key is absent.
    """
    models: dict[str, ModelConfig] = {}
    available_providers: set[str] = set()

    for provider_name, model_raw in raw["models"].items():
        model_cfg = _parse_model(provider_name, model_raw)
        models[provider_name] = model_cfg

        if model_cfg.sdk == "mock":
            available_providers.add(provider_name)
            continue
        api_key = os.environ.get(model_cfg.api_key_env, "").strip() if model_cfg.api_key_env else ""
        if api_key:
            available_providers.add(provider_name)
            logger.debug("Provider available: %s", provider_name)
        else:
            logger.debug(
                "Provider unavailable (no API key): %s; set %s in .env",
                provider_name,
                model_cfg.api_key_env,
            )

    session_raw = raw["session"]
    session = SessionConfig(
        original=str(session_raw["original"]),
        challenger=str(session_raw["challenger"]),
        judge=str(session_raw.get("judge", session_raw["original"])),
        intensity=str(session_raw.get("intensity", "moderate")),
        judge_enabled=bool(session_raw.get("judge_enabled", True)),
        auto_classify=bool(session_raw.get("auto_classify", True)),
        history_window=int(session_raw.get("history_window", 20)),
        persona=session_raw.get("persona") or None,
    )
    if session.intensity not in INTENSITIES:
        raise ConfigError(
            f"session.intensity must be one of {', '.join(INTENSITIES)}, got '{session.intensity}'"
        )
    if session.history_window < 1:
        raise ConfigError("session.history_window must be positive")
    for role in ("original", "challenger", "judge"):
        backend = getattr(session, role)
        if backend not in models:
            raise ConfigError(f"session.{role} refers to unknown model '{backend}'")

    classifier_raw = raw.get("classifier", {})
    classifier = ClassifierConfig(
        backend=str(classifier_raw.get("backend", session.original)),
        model=str(classifier_raw.get("model", models[session.original].model)),
        confidence_threshold=float(classifier_raw.get("confidence_threshold", 0.75)),
    )
    if not 0.0 <= classifier.confidence_threshold <= 1.0:
        raise ConfigError("classifier.confidence_threshold must be between 0 and 1")

    history_raw = raw.get("history", {})
    history = HistoryConfig(
        path=Path(str(history_raw.get("path", "~/.adversarial-mirror/history.json"))).expanduser(),
        max_entries=int(history_raw.get("max_entries", 200)),
    )

    return AppConfig(
        session=session,
        models=models,
        classifier=classifier,
        history=history,
        available_providers=available_providers,
        source=source,
    )


def load_raw(settings_path: Path) -> dict[str, Any]:
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")
    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Settings file is not a mapping: {settings_path}")
    return raw


def load_config(settings_path: Path | None = None) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if the settings file is missing and ConfigError
    on invalid values. Missing API keys are only logged; callers check
    available_providers.
    """
    path = settings_path if settings_path is not None else resolve_settings_path()
    config = parse_config(load_raw(path), source=path)
    logger.debug("Loaded settings from %s", path)
    return config


def init_user_settings(target: Path = USER_SETTINGS_PATH, *, overwrite: bool = False) -> Path:
    """Copy the bundled settings.yaml to the user's settings path."""
    if target.exists() and not overwrite:
        return target
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(_SETTINGS_PATH.read_text(encoding="utf-8"), encoding="utf-8")
    logger.info("Wrote settings to %s", target)
    return target


def set_config_value(settings_path: Path, key_path: str, value: str) -> AppConfig:
    """Set a dotted key (e.g. ``session.intensity``) and save the file.

    ``value`` is parsed as YAML, so ``true``, ``3`` and ``null`` keep their
    types. The updated settings are validated before anything is written.

    Raises:
        ConfigError: If the key path is empty or the result is invalid.
    """
    keys = [k for k in key_path.split(".") if k]
    if not keys:
        raise ConfigError("Empty config key")

    raw = load_raw(settings_path) if settings_path.exists() else load_raw(_SETTINGS_PATH)
    cursor = raw
    for key in keys[:-1]:
        if not isinstance(cursor.get(key), dict):
            cursor[key] = {}
        cursor = cursor[key]
    cursor[keys[-1]] = yaml.safe_load(value)

    try:
        config = parse_config(raw, source=settings_path)
    except ConfigError:
        raise
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {key_path}: {exc}") from exc

    settings_path.parent.mkdir(parents=True, exist_ok=True)
    with settings_path.open("w", encoding="utf-8") as f:
        yaml.safe_dump(raw, f, sort_keys=False)
    return config
