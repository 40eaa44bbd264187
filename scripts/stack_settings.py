import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

from results import FatalStepError

# ---------------------------
# Defaults for the stack as shipped in docker-compose.yml
DEFAULT_PORTS = {
    "radarr": 7878,
    "sonarr": 8989,
    "prowlarr": 9696,
    "qbittorrent": 8080,
    "overseerr": 5055,
}

# Status probe per service; qBittorrent has no unauthenticated status route
STATUS_PATHS = {
    "radarr": "/api/v3/system/status",
    "sonarr": "/api/v3/system/status",
    "prowlarr": "/api/v1/system/status",
    "qbittorrent": "/",
    "overseerr": "/api/v1/status",
}

ARR_SERVICES = ("radarr", "sonarr", "prowlarr")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 30
    interval: float = 2.0

    @property
    def budget(self) -> float:
        return self.max_attempts * self.interval


@dataclass(frozen=True)
class ServiceEndpoint:
    name: str
    base_url: str
    internal_hostname: str
    port: int

    @property
    def internal_url(self) -> str:
        return f"http://{self.internal_hostname}:{self.port}"

    @property
    def display_name(self) -> str:
        return {"qbittorrent": "qBittorrent"}.get(self.name, self.name.capitalize())


class CredentialSource(str, Enum):
    FILE_CONFIG = "file"
    LOG_SCRAPE = "log"
    ENVIRONMENT = "env"
    PROMPT = "prompt"


@dataclass(frozen=True)
class Credential:
    owner: str
    secret: str
    source: CredentialSource

    def __repr__(self):
        # keep secrets out of tracebacks and summaries
        return f"Credential(owner={self.owner!r}, source={self.source.value!r})"


@dataclass(frozen=True)
class StackSettings:
    config_root: Path
    endpoints: dict
    movies_path: str = "/movies"
    tv_path: str = "/tv"
    qb_username: str = "admin"
    qb_password: str = ""
    qb_container: str = "qbittorrent"
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    qb_log_retries: int = 1
    qb_log_retry_delay: float = 30.0
    sync_grace: float = 5.0
    request_timeout: float = 10.0
    api_key_overrides: dict = field(default_factory=dict)

    def endpoint(self, name: str) -> ServiceEndpoint:
        return self.endpoints[name]


def _env_number(name: str, default, cast=int):
    raw = os.getenv(name, "").strip()
    if not raw:
        return cast(default)
    try:
        return cast(raw)
    except ValueError:
        raise FatalStepError(f"{name}={raw!r} is not a number",
                             f"Fix or remove {name} in your .env or environment.") from None


def _port_from_config(config_root: Path, service: str) -> int | None:
    # late import: config_locator depends on this module's types
    from config_locator import read_arr_setting

    if service not in ARR_SERVICES:
        return None
    raw = read_arr_setting(service, config_root, "Port")
    try:
        return int(raw) if raw else None
    except ValueError:
        return None


def build_endpoint(service: str, config_root: Path, url: str | None = None) -> ServiceEndpoint:
    """
    Resolve one service endpoint.
    Host-side URL: explicit override > {SERVICE}_URL > localhost on the port found in the
    service's own config.xml > the compose default port.
    """
    env = service.upper()
    default_port = DEFAULT_PORTS[service]
    internal_host = os.getenv(f"{env}_HOST", service)
    base_url = url or os.getenv(f"{env}_URL")
    if not base_url:
        port = _port_from_config(config_root, service) or default_port
        base_url = f"http://localhost:{port}"
    return ServiceEndpoint(
        name=service,
        base_url=base_url.rstrip("/"),
        internal_hostname=internal_host,
        port=_env_number(f"{env}_INTERNAL_PORT", default_port),
    )


def load_settings(env_file: str | None = ".env", config_root: str | None = None,
                  urls: dict | None = None) -> StackSettings:
    """Read .env (if present) + process environment; CLI values passed in win."""
    if env_file and Path(env_file).exists():
        load_dotenv(env_file)

    root = Path(config_root or os.getenv("CONFIG_DIR") or os.getenv("DOCKER_CONFIG") or "./configs")
    urls = urls or {}
    endpoints = {svc: build_endpoint(svc, root, urls.get(svc)) for svc in DEFAULT_PORTS}

    overrides = {}
    for svc in ARR_SERVICES + ("overseerr",):
        val = os.getenv(f"{svc.upper()}_API_KEY", "")
        if val:
            overrides[svc] = val

    return StackSettings(
        config_root=root,
        endpoints=endpoints,
        movies_path=os.getenv("MOVIES_PATH", "/movies"),
        tv_path=os.getenv("TV_PATH", "/tv"),
        qb_username=os.getenv("QB_USERNAME", "admin"),
        qb_password=os.getenv("QB_PASSWORD", ""),
        qb_container=os.getenv("QBITTORRENT_CONTAINER", "qbittorrent"),
        retry=RetryPolicy(
            max_attempts=_env_number("WAIT_ATTEMPTS", 30),
            interval=_env_number("WAIT_INTERVAL", 2, float),
        ),
        qb_log_retries=_env_number("QB_LOG_RETRIES", 1),
        qb_log_retry_delay=_env_number("QB_LOG_RETRY_DELAY", 30, float),
        sync_grace=_env_number("SYNC_GRACE", 5, float),
        request_timeout=_env_number("REQUEST_TIMEOUT", 10, float),
        api_key_overrides=overrides,
    )
