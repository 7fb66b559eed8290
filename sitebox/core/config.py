"""sitebox runtime configuration and settings."""
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

PLATFORM_LINUX = "linux"
PLATFORM_DARWIN = "darwin"

DEFAULT_IMAGES = {
    "nginx": "easyengine/nginx:v4.6.6",
    "php": "easyengine/php{version}:v4.6.6",
    "postfix": "easyengine/postfix:v4.6.6",
    "mariadb": "easyengine/mariadb:v4.6.6",
    "redis": "easyengine/redis:v4.6.6",
}


def current_platform() -> str:
    """Return the platform name used by volume skip flags."""
    return PLATFORM_DARWIN if sys.platform == "darwin" else PLATFORM_LINUX


@dataclass
class SiteboxConfig:
    """Runtime configuration for provisioning.

    Attributes:
        root_dir: Root of all sitebox state (sites, record store, logs, certs)
        global_db_host: Container/host name of the shared database
        global_db_container: Container running the shared database server
        global_redis_host: Container/host name of the shared redis cache
        proxy_container: Shared reverse proxy container that fronts every site
        hosts_file: Hosts file receiving entries for sites without public TLS
        command_timeout: Upper bound in seconds for any docker/host command
        status_check_attempts: Readiness probe attempts before giving up
        status_check_interval: Seconds between readiness probe attempts
        platform: Override for the detected platform (linux/darwin)
    """

    root_dir: Path = Path("/opt/sitebox")
    global_db_host: str = "global-db"
    global_db_root_password: str = ""
    global_db_container: str = "sitebox-global-db"
    global_redis_container: str = "sitebox-global-redis"
    global_redis_host: str = "global-redis"
    proxy_container: str = "sitebox-global-nginx-proxy"
    frontend_network: str = "sitebox-global-frontend-network"
    backend_network: str = "sitebox-global-backend-network"
    hosts_file: Path = Path("/etc/hosts")
    command_timeout: int = 300  # docker pulls can be slow
    status_check_attempts: int = 10
    status_check_interval: float = 3.0
    http_timeout: float = 5.0
    platform: Optional[str] = None
    images: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_IMAGES))

    @property
    def sites_dir(self) -> Path:
        return Path(self.root_dir) / "sites"

    @property
    def records_file(self) -> Path:
        return Path(self.root_dir) / "db" / "sites.json"

    @property
    def lock_file(self) -> Path:
        return Path(self.root_dir) / "db" / "sites.lock"

    @property
    def certs_dir(self) -> Path:
        return Path(self.root_dir) / "services" / "nginx-proxy" / "certs"

    @property
    def log_file(self) -> Path:
        return Path(self.root_dir) / "logs" / "sitebox.log"

    def resolved_platform(self) -> str:
        return self.platform or current_platform()

    def site_root(self, site_url: str) -> Path:
        return self.sites_dir / site_url

    @classmethod
    def from_env(cls) -> "SiteboxConfig":
        """Create config from environment variables.

        Environment variables:
            SITEBOX_ROOT: Root directory for sites, records and logs
            SITEBOX_GLOBAL_DB_HOST: Shared database host name
            SITEBOX_GLOBAL_DB_ROOT_PASSWORD: Root password of the shared database
            SITEBOX_HOSTS_FILE: Hosts file to register local sites in
            SITEBOX_COMMAND_TIMEOUT: Timeout for docker commands in seconds
            SITEBOX_STATUS_CHECK_ATTEMPTS: Readiness probe attempts
            SITEBOX_PLATFORM: Force platform (linux/darwin)

        Returns:
            SiteboxConfig instance with values from environment or defaults
        """
        return cls(
            root_dir=Path(os.getenv("SITEBOX_ROOT", str(cls.root_dir))),
            global_db_host=os.getenv("SITEBOX_GLOBAL_DB_HOST", cls.global_db_host),
            global_db_root_password=os.getenv(
                "SITEBOX_GLOBAL_DB_ROOT_PASSWORD", cls.global_db_root_password
            ),
            hosts_file=Path(os.getenv("SITEBOX_HOSTS_FILE", str(cls.hosts_file))),
            command_timeout=int(
                os.getenv("SITEBOX_COMMAND_TIMEOUT", cls.command_timeout)
            ),
            status_check_attempts=int(
                os.getenv("SITEBOX_STATUS_CHECK_ATTEMPTS", cls.status_check_attempts)
            ),
            platform=os.getenv("SITEBOX_PLATFORM") or None,
        )


_config: Optional[SiteboxConfig] = None


def get_config() -> SiteboxConfig:
    """Get the global configuration (created from environment if not set)."""
    global _config
    if _config is None:
        _config = SiteboxConfig.from_env()
    return _config


def set_config(config: Optional[SiteboxConfig]):
    """Set (or with None, reset) the global configuration."""
    global _config
    _config = config
