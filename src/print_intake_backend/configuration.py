"""
Configuration loading for the intake service.

Defaults live in ``config/config.yaml`` next to this module. Operational
secrets are marked mandatory (``???``) there and are filled from the process
environment (optionally primed from a ``.env`` file). The merged document is
validated into an immutable Configuration value that the rest of the package
receives as an argument; nothing else in the package reads the environment.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import urlparse

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from .errors import ConfigError

load_dotenv()

CONFIG_PATH = Path(__file__).resolve().parent / "config" / "config.yaml"

# Config key -> environment variable. Order is the order missing keys are reported in.
ENV_KEYS: Dict[str, str] = {
    "storage.endpoint_url": "STORAGE_ENDPOINT_URL",
    "storage.region": "STORAGE_REGION",
    "storage.bucket": "STORAGE_BUCKET",
    "storage.access_key_id": "STORAGE_ACCESS_KEY_ID",
    "storage.secret_access_key": "STORAGE_SECRET_ACCESS_KEY",
    "storage.public_base_url": "STORAGE_PUBLIC_BASE_URL",
    "storage.key_prefix": "STORAGE_KEY_PREFIX",
    "telegram.bot_token": "TELEGRAM_BOT_TOKEN",
    "telegram.chat_id": "TELEGRAM_CHAT_ID",
    "email.host": "EMAIL_HOST",
    "email.port": "EMAIL_PORT",
    "email.secure": "EMAIL_SECURE",
    "email.user": "EMAIL_USER",
    "email.password": "EMAIL_PASS",
    "email.sender": "EMAIL_FROM",
    "email.recipient": "EMAIL_TO",
    "app.environment": "APP_ENV",
    "app.log_level": "LOG_LEVEL",
    "intake.max_file_size_mb": "MAX_FILE_SIZE_MB",
    "intake.max_request_size_mb": "MAX_REQUEST_SIZE_MB",
}

_MIB = 1024 * 1024


class StorageSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    endpoint_url: Optional[str] = None
    region: str = "us-east-1"
    bucket: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None
    key_prefix: str = "requests"


class TelegramSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    api_base: str = "https://api.telegram.org"
    bot_token: str
    chat_id: str


class EmailSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    host: str
    port: int
    secure: bool
    user: str
    password: str
    sender: str
    recipient: str
    subject: str = "New Print Request Submitted"


class IntakeSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_file_size_mb: int = 100
    max_request_size_mb: int = 100
    require_attachments: bool = True
    upload_workers: int = 4
    allowed_mime_types: List[str] = []

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * _MIB

    @property
    def max_request_size_bytes(self) -> int:
        return self.max_request_size_mb * _MIB


class AppSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    environment: str = "production"
    log_level: str = "INFO"
    intake: IntakeSettings = IntakeSettings()

    @property
    def development(self) -> bool:
        return self.environment.lower() in {"development", "dev", "local"}


class Configuration(BaseModel):
    model_config = ConfigDict(frozen=True)

    app: AppSettings
    storage: StorageSettings
    telegram: TelegramSettings
    email: EmailSettings

    @property
    def intake(self) -> IntakeSettings:
        return self.app.intake


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Nest non-blank environment values under their config keys."""
    overrides: Dict[str, Any] = {}
    for key, env_name in ENV_KEYS.items():
        value = environ.get(env_name)
        if value is None or not value.strip():
            continue
        section, name = key.split(".", 1)
        overrides.setdefault(section, {})[name] = value.strip()
    return overrides


def make_runtime_config(environ: Optional[Mapping[str, str]] = None) -> DictConfig:
    base = OmegaConf.create(OmegaConf.to_container(_load_default_config(), resolve=False))
    OmegaConf.set_struct(base, True)
    env_config = OmegaConf.create(_env_overrides(os.environ if environ is None else environ))
    return DictConfig(OmegaConf.merge(base, env_config))


def _describe(exc: PydanticValidationError, prefix: str = "") -> List[str]:
    problems = []
    for error in exc.errors():
        loc = ".".join(str(part) for part in error["loc"])
        # intake settings are validated nested under app
        key = f"{prefix}{loc}".replace("app.intake.", "intake.")
        label = ENV_KEYS.get(key, key)
        problems.append(f"{label}: {error['msg']}")
    return problems


def _check_secure_url(value: Optional[str], env_name: str) -> List[str]:
    if not value:
        return []
    if urlparse(value).scheme != "https":
        return [f"Invalid {env_name}: must start with https://"]
    return []


def load_app_settings(environ: Optional[Mapping[str, str]] = None) -> AppSettings:
    """
    Resolve the non-secret sections only (app and intake).

    Used at process start to configure logging and middleware before any
    secret is needed.

    Raises:
        ConfigError: If a non-secret override cannot be parsed
    """
    merged = make_runtime_config(environ)
    container = OmegaConf.to_container(merged.app, resolve=True)
    container["intake"] = OmegaConf.to_container(merged.intake, resolve=True)
    try:
        return AppSettings.model_validate(container)
    except PydanticValidationError as exc:
        raise ConfigError(problems=_describe(exc, prefix="app.")) from exc


def load_config(environ: Optional[Mapping[str, str]] = None) -> Configuration:
    """
    Build the full runtime Configuration.

    Args:
        environ: Mapping to read variables from (default: os.environ)

    Returns:
        Immutable Configuration

    Raises:
        ConfigError: Listing every missing variable, or every malformed value
    """
    merged = make_runtime_config(environ)

    missing_keys = OmegaConf.missing_keys(merged)
    missing = [env_name for key, env_name in ENV_KEYS.items() if key in missing_keys]
    if missing:
        raise ConfigError(missing=missing)

    container: Dict[str, Any] = OmegaConf.to_container(merged, resolve=True)  # type: ignore[assignment]
    container["app"] = {**container["app"], "intake": container.pop("intake")}

    try:
        config = Configuration.model_validate(container)
    except PydanticValidationError as exc:
        raise ConfigError(problems=_describe(exc)) from exc

    problems = _check_secure_url(config.storage.endpoint_url, "STORAGE_ENDPOINT_URL")
    problems += _check_secure_url(config.storage.public_base_url, "STORAGE_PUBLIC_BASE_URL")
    if problems:
        raise ConfigError(problems=problems)
    return config
