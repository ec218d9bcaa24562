"""
Configuration loader for the dialog engine.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class StorageConfig:
    backend: str = "memory"                       # "memory" | "file" | "sql"
    file_dir: str = "./data"                      # directory for file backend
    url: str = "sqlite:///./dialog_engine.db"     # postgresql:// | mysql:// | sqlite://


@dataclass
class TokenServiceConfig:
    base_url: str = "https://api.botframework.com"
    app_id: str = ""
    access_token: str = ""
    timeout_seconds: float = 30.0
    retry_attempts: int = 3
    retry_backoff: float = 1.0         # tenacity wait_exponential multiplier


@dataclass
class AuthHandlerConfig:
    connection_name: str = ""
    title: str = "Sign in"
    text: str = "login"


@dataclass
class OAuthConfig:
    prompt_timeout_ms: int = 900000    # OAuthPrompt default expiry
    flow_expiry_ms: int = 30000        # OAuthFlow card validity
    card_title: str = "Sign in"
    card_text: str = "login"
    handlers: dict[str, AuthHandlerConfig] = field(default_factory=dict)


@dataclass
class DialogsConfig:
    default_locale: str = "en-us"


@dataclass
class Settings:
    app_name: str = "DialogEngine"
    debug: bool = False
    storage: StorageConfig = field(default_factory=StorageConfig)
    token_service: TokenServiceConfig = field(default_factory=TokenServiceConfig)
    oauth: OAuthConfig = field(default_factory=OAuthConfig)
    dialogs: DialogsConfig = field(default_factory=DialogsConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "DIALOG_ENGINE_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = raw.get("debug", settings.debug)

        if "storage" in raw:
            st = raw["storage"] or {}
            settings.storage = StorageConfig(
                backend=st.get("backend", settings.storage.backend),
                file_dir=st.get("file_dir", settings.storage.file_dir),
                url=st.get("url", settings.storage.url),
            )

        if "token_service" in raw:
            ts = raw["token_service"] or {}
            settings.token_service = TokenServiceConfig(
                base_url=ts.get("base_url", settings.token_service.base_url),
                app_id=ts.get("app_id", ""),
                access_token=ts.get("access_token", ""),
                timeout_seconds=float(ts.get("timeout_seconds", 30.0)),
                retry_attempts=int(ts.get("retry_attempts", 3)),
                retry_backoff=float(ts.get("retry_backoff", 1.0)),
            )

        if "oauth" in raw:
            oa = raw["oauth"] or {}
            handlers = {}
            for handler_id, h in (oa.get("handlers") or {}).items():
                h = h or {}
                handlers[handler_id] = AuthHandlerConfig(
                    connection_name=h.get("connection_name", ""),
                    title=h.get("title", oa.get("card_title", "Sign in")),
                    text=h.get("text", oa.get("card_text", "login")),
                )
            settings.oauth = OAuthConfig(
                prompt_timeout_ms=int(oa.get("prompt_timeout_ms", 900000)),
                flow_expiry_ms=int(oa.get("flow_expiry_ms", 30000)),
                card_title=oa.get("card_title", "Sign in"),
                card_text=oa.get("card_text", "login"),
                handlers=handlers,
            )

        if "dialogs" in raw:
            dl = raw["dialogs"] or {}
            settings.dialogs = DialogsConfig(
                default_locale=dl.get("default_locale", settings.dialogs.default_locale),
            )

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings (used by tests)."""
    global _settings
    _settings = None
