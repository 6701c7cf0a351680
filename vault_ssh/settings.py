from typing import Optional, Any, Dict
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource
import os
import json
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except Exception:  # pragma: no cover
    tomllib = None  # type: ignore

try:  # optional, only if installed
    import yaml  # type: ignore
except Exception:  # pragma: no cover
    yaml = None  # type: ignore

class Settings(BaseSettings):
    # Vault connection (storage backend)
    VAULT_ADDR: str = "http://localhost:8200"
    VAULT_NAMESPACE: Optional[str] = None
    VAULT_TOKEN: Optional[str] = None
    VAULT_ROLE_ID: Optional[str] = None
    VAULT_SECRET_ID: Optional[str] = None
    KV_MOUNT: str = "secret"
    STORAGE_PREFIX: str = "ssh"

    # "vault" for KV v2, "memory" for a process-local store (tests, local runs)
    STORAGE_BACKEND: str = "vault"

    # Secret used to derive OTP storage keys. When unset, a salt is created
    # once in storage under "salt" and reused.
    OTP_SALT: Optional[str] = None
    OTP_MAX_ATTEMPTS: int = 16

    # Remote install sessions
    SSH_CONNECT_TIMEOUT: float = 10.0
    SSH_COMMAND_TIMEOUT: float = 30.0
    # reject | warning | auto_add
    SSH_HOST_KEY_POLICY: str = "warning"

    # Auth enable flags
    AUTH_API_KEY_ENABLED: bool = True
    AUTH_JWT_ENABLED: bool = True

    # API keys: JSON map token -> subject
    API_KEYS_JSON: Optional[str] = None

    # JWT base config
    JWT_ISSUER: str = "ssh-issuer"
    JWT_AUDIENCE: str = "ssh-clients"
    JWT_HS256_SECRET: Optional[str] = None
    JWT_VALIDATE_ISSUER: bool = True
    JWT_VALIDATE_AUDIENCE: bool = True
    # RS256 / JWKS
    JWT_JWKS_URL: Optional[str] = None
    JWT_JWKS_FILE: Optional[str] = None
    JWT_JWKS_CACHE_SECONDS: int = 300
    JWT_REQUIRE_KID: bool = False

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REQUESTS: int = 60
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # Comma-separated origins; if empty/None, CORS is disabled.
    CORS_ALLOW_ORIGINS: Optional[str] = None

    # Do NOT auto-load .env; prefer environment variables and an optional config file.
    # A config file path can be provided via APP_CONFIG_FILE (JSON/TOML/YAML). Env vars override file.
    model_config = SettingsConfigDict(case_sensitive=True)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,  # environment has priority over file
            _FileConfigSource(cls),
            file_secret_settings,
        )


def _config_path() -> Optional[Path]:
    cfg = os.environ.get("APP_CONFIG_FILE") or os.environ.get("CONFIG_FILE")
    if cfg:
        return Path(cfg).expanduser().resolve()
    for name in ("config.toml", "config.json", "config.yaml", "config.yml"):
        p = Path.cwd() / name
        if p.exists():
            return p.resolve()
    return None


def _read_config(path: Path) -> Dict[str, Any]:
    suffix = path.suffix.lower()
    if suffix == ".json":
        with path.open("r", encoding="utf-8") as f:
            return json.load(f) or {}
    if suffix == ".toml" and tomllib is not None:
        with path.open("rb") as f:
            return tomllib.load(f) or {}
    if suffix in (".yaml", ".yml") and yaml is not None:
        with path.open("r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    return {}


class _FileConfigSource(PydanticBaseSettingsSource):
    """Optional structured config file; keys are matched upper-cased."""

    def __init__(self, settings_cls: type[BaseSettings]) -> None:
        super().__init__(settings_cls)
        self._data: Dict[str, Any] = {}
        path = _config_path()
        if not path or not path.exists():
            return
        try:
            data = _read_config(path)
        except Exception:
            # unreadable config file falls back to env/defaults
            data = {}
        if isinstance(data, dict):
            self._data = {str(k).upper(): v for k, v in data.items()}

    def get_field_value(self, field, field_name: str) -> tuple[Any, str, bool]:
        up = field_name.upper()
        if up in self._data:
            return self._data[up], field_name, False
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        return {
            name: self._data[name.upper()]
            for name in self.settings_cls.model_fields
            if name.upper() in self._data
        }


settings = Settings()
