import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


DEFAULT_COMMUNITIES = "valheim,lethal-company,riskofrain2,v-rising,sunkenland"


def _get_env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _get_env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value in (None, ""):
        return default
    if value.strip().lower() in {"1", "true", "yes", "on"}:
        return True
    if value.strip().lower() in {"0", "false", "no", "off"}:
        return False
    return default


def _get_env_list(name: str, default: str) -> tuple[str, ...]:
    value = os.getenv(name) or default
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    docker_base_url: str
    restart_container: str | None
    mods_dir: str
    data_dir: str
    backup_dir: str
    thunderstore_base_url: str
    communities: tuple[str, ...]
    package_cache_ttl_seconds: int
    http_timeout_seconds: float
    auto_stop_enabled: bool
    auto_stop_timeout_minutes: float
    auto_stop_interval_seconds: int
    idle_threshold_bytes: int
    strict_version_conflicts: bool
    log_level: str


def load_settings() -> Settings:
    return Settings(
        docker_base_url=os.getenv("DOCKER_BASE_URL", "unix://var/run/docker.sock"),
        restart_container=os.getenv("RESTART_CONTAINER") or None,
        mods_dir=os.path.abspath(os.getenv("MODS_DIR", "/data/mods")),
        data_dir=os.path.abspath(os.getenv("DATA_DIR", "/data/server")),
        backup_dir=os.path.abspath(os.getenv("BACKUP_DIR", "/data/backups")),
        thunderstore_base_url=os.getenv("THUNDERSTORE_BASE_URL", "https://thunderstore.io"),
        communities=_get_env_list("THUNDERSTORE_COMMUNITIES", DEFAULT_COMMUNITIES),
        package_cache_ttl_seconds=_get_env_int("PACKAGE_CACHE_TTL_SECONDS", 600),
        http_timeout_seconds=_get_env_float("HTTP_TIMEOUT_SECONDS", 30.0),
        auto_stop_enabled=_get_env_bool("AUTO_STOP_ENABLED", False),
        auto_stop_timeout_minutes=_get_env_float("AUTO_STOP_TIMEOUT_MINUTES", 15.0),
        auto_stop_interval_seconds=_get_env_int("AUTO_STOP_INTERVAL_SECONDS", 60),
        idle_threshold_bytes=_get_env_int("IDLE_THRESHOLD_BYTES", 5000),
        strict_version_conflicts=_get_env_bool("STRICT_VERSION_CONFLICTS", False),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


settings = load_settings()
