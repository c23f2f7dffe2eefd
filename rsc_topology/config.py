import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import yaml

logger = logging.getLogger(__name__)

STORE_BACKENDS = {"json", "api"}


def _normalize_api_url(url: str) -> str:
    """Normalize TOPOLOGY_API_URL and ensure it has a host."""
    u = url.strip().rstrip("/")
    # Collapse extra slashes after :// (e.g. https:///host -> https://host)
    u = re.sub(r"(https?):///+", r"\1://", u)
    parsed = urlparse(u)
    if not parsed.netloc:
        raise RuntimeError(
            f"TOPOLOGY_API_URL has no host: {url!r}. "
            "Use e.g. http://netadmin.local:3001 (no extra slashes)."
        )
    return u


def _parse_bool(name: str, raw: object, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    v = str(raw).strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    raise RuntimeError(f"Invalid boolean value for {name}={raw!r} (expected true/false).")


def _env_bool(name: str, default: bool = False) -> bool:
    return _parse_bool(name, os.getenv(name), default)


def _parse_int(name: str, raw: object, default: int) -> int:
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise RuntimeError(f"{name} must be an integer (seconds)") from exc


def _read_secret_file(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    p = Path(path)
    if not p.is_file():
        logger.warning("Secret file %s does not exist", p)
        return None
    return p.read_text(encoding="utf-8").strip()


@dataclass
class Settings:
    store_backend: str
    data_dir: Path
    api_url: Optional[str] = None
    api_token: Optional[str] = None
    api_timeout: int = 30
    api_verify_ssl: bool = True
    log_level: str = "INFO"
    log_dir: Optional[Path] = None


def _finish(settings: Settings) -> Settings:
    """Validate cross-field rules shared by YAML and env loading."""
    if settings.store_backend not in STORE_BACKENDS:
        raise RuntimeError(
            f"Unknown store backend {settings.store_backend!r} (expected one of {sorted(STORE_BACKENDS)})"
        )
    if settings.store_backend == "api":
        if not settings.api_url:
            raise RuntimeError("TOPOLOGY_API_URL (or api.url) is required for the api store backend")
        settings.api_url = _normalize_api_url(settings.api_url)
    return settings


def _load_settings_from_yaml(path: str) -> Settings:
    """Load settings from a single YAML config file."""
    p = Path(path)
    if not p.is_file():
        raise RuntimeError(f"APP_CONFIG_FILE not found: {path}")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Failed to read YAML config: {path}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise RuntimeError("YAML config root must be a mapping/object")

    store = raw.get("store") or {}
    api = raw.get("api") or {}
    runtime = raw.get("runtime") or {}
    for section_name, section in (("store", store), ("api", api), ("runtime", runtime)):
        if not isinstance(section, dict):
            raise RuntimeError(f"{section_name} must be a mapping/object")

    api_token: Optional[str] = None
    if isinstance(api.get("api_token"), str) and api["api_token"].strip():
        api_token = api["api_token"].strip()
    elif isinstance(api.get("api_token_file"), str) and api["api_token_file"].strip():
        api_token = _read_secret_file(api["api_token_file"].strip())

    api_url = api.get("url")
    if api_url is not None and not isinstance(api_url, str):
        raise RuntimeError("api.url must be a string")

    log_dir = runtime.get("log_dir")

    return _finish(
        Settings(
            store_backend=str(store.get("backend", "json")).strip().lower(),
            data_dir=Path(str(store.get("data_dir", "./data"))),
            api_url=api_url,
            api_token=api_token,
            api_timeout=_parse_int("api.timeout", api.get("timeout"), 30),
            api_verify_ssl=_parse_bool("api.verify_ssl", api.get("verify_ssl"), True),
            log_level=str(runtime.get("log_level", "INFO")),
            log_dir=Path(str(log_dir)) if log_dir else None,
        )
    )


def load_settings() -> Settings:
    """Load settings from APP_CONFIG_FILE (YAML) if set, otherwise from environment variables."""
    app_config_file = os.getenv("APP_CONFIG_FILE")
    if app_config_file:
        return _load_settings_from_yaml(app_config_file)

    # Prioritize direct env var over file-based token
    api_token = os.getenv("TOPOLOGY_API_TOKEN")
    if not api_token:
        api_token = _read_secret_file(os.getenv("TOPOLOGY_API_TOKEN_FILE"))

    log_dir = os.getenv("LOG_DIR")

    return _finish(
        Settings(
            store_backend=os.getenv("RSC_STORE_BACKEND", "json").strip().lower(),
            data_dir=Path(os.getenv("RSC_DATA_DIR", "./data")),
            api_url=os.getenv("TOPOLOGY_API_URL"),
            api_token=api_token,
            api_timeout=_parse_int("TOPOLOGY_API_TIMEOUT", os.getenv("TOPOLOGY_API_TIMEOUT"), 30),
            api_verify_ssl=_env_bool("TOPOLOGY_API_VERIFY_SSL", default=True),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_dir=Path(log_dir) if log_dir else None,
        )
    )
