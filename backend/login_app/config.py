"""Log In service configuration.

Loads settings from two YAML files:
  * login.settings.yaml  — non-secret configuration
  * login.secrets.yaml   — Parse keys (never committed)

Both files are optional; missing files fall back to model defaults.
"""
from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("login.settings.yaml")
SECRETS_FILE  = Path("login.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class ParseSecrets(BaseModel):
    application_id: str           = ""
    client_key:     Optional[str] = None
    rest_api_key:   Optional[str] = None


class Secrets(BaseModel):
    parse: ParseSecrets = Field(default_factory=ParseSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:  str  = "0.0.0.0"
    port:  int  = 8000
    debug: bool = False


class LoggingSettings(BaseModel):
    level: str = "info"


class IdentityServiceSettings(BaseModel):
    """Parse Server endpoint (Back4App by default)."""
    server_url:         str  = "https://parseapi.back4app.com"
    revocable_session:  bool = True

    @field_validator("server_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class AppleSettings(BaseModel):
    """Sign in with Apple (web flow) settings."""
    enabled:                  bool = False
    client_id:                str  = ""
    redirect_uri:             str  = ""
    authorize_url:            str  = "https://appleid.apple.com/auth/authorize"
    response_timeout_seconds: int  = 300

    @field_validator("response_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("response_timeout_seconds must be positive")
        return value


class SessionSettings(BaseModel):
    cookie_name:        str  = "session_token"
    screen_cookie_name: str  = "login_screen"
    cookie_secure:      bool = True


class LoginConfig(BaseModel):
    server:           ServerSettings          = Field(default_factory=ServerSettings)
    logging:          LoggingSettings         = Field(default_factory=LoggingSettings)
    identity_service: IdentityServiceSettings = Field(default_factory=IdentityServiceSettings)
    apple:            AppleSettings           = Field(default_factory=AppleSettings)
    session:          SessionSettings         = Field(default_factory=SessionSettings)
    secrets:          Secrets                 = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> LoginConfig:
    """Load and merge settings + secrets into a single *LoginConfig* object."""
    settings_data = _load_yaml(Path(settings_path) if settings_path else SETTINGS_FILE)
    secrets_data  = _load_yaml(Path(secrets_path) if secrets_path else SECRETS_FILE)

    # Merge: secrets live under the "secrets" key in LoginConfig
    settings_data["secrets"] = secrets_data

    config = LoginConfig(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, identity_service=%s, apple.enabled=%s)",
        config.server.host,
        config.server.port,
        config.identity_service.server_url,
        config.apple.enabled,
    )
    return config


@lru_cache(maxsize=1)
def get_config() -> LoginConfig:
    """Return the process-wide configuration, loading it on first use."""
    return load_config()
