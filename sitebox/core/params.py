"""Validated site parameters.

Every field here has already been checked by SiteValidator; downstream
components read them without re-validating optional fields.
"""
import secrets
import string
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from pathlib import Path
from typing import Optional, Tuple

LOCAL_DB_HOST = "db"
LOCAL_REDIS_HOST = "redis"
DEFAULT_DB_PORT = "3306"
DOCUMENT_ROOT = "/var/www/htdocs"

SUPPORTED_PHP_VERSIONS = (
    "5.6", "7.0", "7.2", "7.3", "7.4", "8.0", "8.1", "8.2", "8.3", "8.4", "latest",
)
PHP_FALLBACKS = {5: "5.6", 7: "7.4", 8: "8.3"}
# 8.0 is served by the latest image
PHP_ALIASES = {"8.0": "latest"}


class Level(IntEnum):
    """Provisioning progress. Rollback undoes every stage up to the level reached."""
    INITIAL = 0
    ROOT_CREATED = 1
    NETWORK_JOINED = 2
    CONFIGURED = 3
    HEALTH_VERIFIED = 4


class CacheMode(str, Enum):
    NONE = "none"
    SHARED = "shared"
    LOCAL = "local"


class SSLMode(str, Enum):
    NONE = "none"
    SELF = "self"
    LE = "le"
    INHERIT = "inherit"
    CUSTOM = "custom"


class DbMode(str, Enum):
    NONE = "none"
    SHARED = "shared"
    LOCAL = "local"
    REMOTE = "remote"


def random_password(length: int = 18) -> str:
    """Generate an alphanumeric secret safe to embed in SQL and env files."""
    alphabet = string.ascii_letters + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))


def docker_style_prefix(site_url: str) -> str:
    """Return the compose project prefix for a site (dots removed)."""
    return site_url.replace(".", "")


@dataclass(frozen=True)
class DatabaseCredentials:
    """Resolved database connection settings for a site."""

    host: str
    port: str
    user: str
    password: str
    name: str
    root_password: str = ""
    global_host: str = "global-db"

    @property
    def mode(self) -> DbMode:
        if self.host == LOCAL_DB_HOST:
            return DbMode.LOCAL
        if self.host == self.global_host:
            return DbMode.SHARED
        return DbMode.REMOTE

    @property
    def address(self) -> str:
        """Host string as seen by the PHP container."""
        if self.mode == DbMode.LOCAL:
            return self.host
        return f"{self.host}:{self.port}"

    def __repr__(self) -> str:
        return (
            f"DatabaseCredentials(host={self.host!r}, port={self.port!r}, "
            f"user={self.user!r}, name={self.name!r})"
        )


@dataclass(frozen=True)
class SiteParameters:
    """Immutable description of the site to provision."""

    site_url: str
    site_fs_path: Path
    php_version: str = "latest"
    cache_mode: CacheMode = CacheMode.NONE
    alias_domains: Tuple[str, ...] = ()
    ssl_mode: SSLMode = SSLMode.NONE
    ssl_wildcard: bool = False
    ssl_key: Optional[Path] = None
    ssl_crt: Optional[Path] = None
    database: Optional[DatabaseCredentials] = None
    admin_email: str = ""
    public_dir: str = DOCUMENT_ROOT
    skip_status_check: bool = False
    skip_db_check: bool = False
    force: bool = False
    global_redis_host: str = field(default="global-redis", repr=False)

    @property
    def site_prefix(self) -> str:
        return docker_style_prefix(self.site_url)

    @property
    def db_mode(self) -> DbMode:
        return self.database.mode if self.database else DbMode.NONE

    @property
    def has_local_db(self) -> bool:
        return self.db_mode == DbMode.LOCAL

    @property
    def cache_host(self) -> str:
        if self.cache_mode == CacheMode.LOCAL:
            return LOCAL_REDIS_HOST
        if self.cache_mode == CacheMode.SHARED:
            return self.global_redis_host
        return ""

    @property
    def app_sub_type(self) -> str:
        return "mysql" if self.database else "php"

    @property
    def is_ssl(self) -> bool:
        return self.ssl_mode != SSLMode.NONE

    @property
    def extra_domains(self) -> Tuple[str, ...]:
        """Alias domains without the primary URL."""
        return tuple(d for d in self.alias_domains if d != self.site_url)

    @property
    def all_domains(self) -> Tuple[str, ...]:
        return (self.site_url,) + self.extra_domains

    @property
    def app_dir(self) -> Path:
        return self.site_fs_path / "app"

    @property
    def htdocs_dir(self) -> Path:
        return self.app_dir / "htdocs"

    @property
    def webroot(self) -> Path:
        """Host path of the directory nginx serves as document root."""
        relative = self.public_dir[len(DOCUMENT_ROOT):].strip("/")
        return self.htdocs_dir / relative if relative else self.htdocs_dir

    def container_name(self, service: str) -> str:
        return f"{self.site_prefix}_{service}_1"

    def services(self) -> Tuple[str, ...]:
        """Compose services this site runs."""
        names = ["nginx", "php", "postfix"]
        if self.has_local_db:
            names.append("db")
        if self.cache_mode == CacheMode.LOCAL:
            names.append("redis")
        return tuple(names)
