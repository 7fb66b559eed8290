"""Volume and service descriptors for the site manifest.

Everything here is pure: the same SiteParameters always give the same table.
Platform-specific behaviour is only *declared* through skip flags; the
resource provisioner and the renderer decide what applies on the current
platform.
"""
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from sitebox.core.config import PLATFORM_DARWIN, PLATFORM_LINUX
from sitebox.core.params import SiteParameters


@dataclass(frozen=True)
class VolumeDescriptor:
    """One mount of a service.

    Attributes:
        name: Volume name (unique per site once prefixed)
        host_path: Host path symlinked to the volume, or bind source
        container_path: Mount point inside the container
        skip_darwin: Not used on macOS hosts
        skip_linux: Not used on Linux hosts
        skip_volume: Mounted as a plain bind, never created as a managed volume
    """
    name: str
    host_path: str
    container_path: str
    skip_darwin: bool = False
    skip_linux: bool = False
    skip_volume: bool = False

    def applies_to(self, platform: str) -> bool:
        if platform == PLATFORM_DARWIN:
            return not self.skip_darwin
        if platform == PLATFORM_LINUX:
            return not self.skip_linux
        return True

    def needs_registration(self, platform: str) -> bool:
        return not self.skip_volume and self.applies_to(platform)


@dataclass(frozen=True)
class ServiceDescriptor:
    """A compose service with its ordered mounts and rendering environment."""
    name: str
    volumes: Tuple[VolumeDescriptor, ...] = ()
    environment: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class VolumeSpec:
    """Site-relative volume template; ``path`` is joined to the site root
    unless it is absolute."""
    name: str
    path: str
    container_path: str
    skip_darwin: bool = False
    skip_linux: bool = False
    skip_volume: bool = False

    def resolve(self, site: SiteParameters) -> VolumeDescriptor:
        host_path = self.path if self.path.startswith('/') else f"{site.site_fs_path}/{self.path}"
        return VolumeDescriptor(
            name=self.name,
            host_path=host_path,
            container_path=self.container_path,
            skip_darwin=self.skip_darwin,
            skip_linux=self.skip_linux,
            skip_volume=self.skip_volume,
        )


@dataclass(frozen=True)
class ServiceEntry:
    name: str
    volumes: Tuple[VolumeSpec, ...] = ()
    environment: Optional[Callable[[SiteParameters], Dict[str, str]]] = None
    enabled: Callable[[SiteParameters], bool] = field(default=lambda site: True)


DOCUMENT_ROOT_VOLUME = VolumeSpec("htdocs", "app", "/var/www")

NGINX_CONF = "/usr/local/openresty/nginx/conf"
PHP_CONF = "/usr/local/etc"


def _nginx_env(site: SiteParameters) -> Dict[str, str]:
    return {
        'VIRTUAL_HOST': ','.join(site.all_domains),
        'VIRTUAL_PATH': '/',
    }


def _php_env(site: SiteParameters) -> Dict[str, str]:
    env = {'VIRTUAL_HOST': site.site_url}
    if site.cache_host:
        env['REDIS_HOST'] = site.cache_host
    return env


def _postfix_env(site: SiteParameters) -> Dict[str, str]:
    return {'MAILNAME': site.site_url}


SERVICE_TABLE: Tuple[ServiceEntry, ...] = (
    ServiceEntry(
        "nginx",
        volumes=(
            VolumeSpec("config_nginx", "config/nginx", NGINX_CONF, skip_darwin=True),
            VolumeSpec("config_nginx", "config/nginx/conf.d/main.conf", f"{NGINX_CONF}/conf.d/main.conf",
                       skip_linux=True, skip_volume=True),
            VolumeSpec("log_nginx", "logs/nginx", "/var/log/nginx"),
        ),
        environment=_nginx_env,
    ),
    ServiceEntry(
        "php",
        volumes=(
            VolumeSpec("config_php", "config/php", PHP_CONF, skip_darwin=True),
            VolumeSpec("config_php", "config/php/php/conf.d/custom.ini", f"{PHP_CONF}/php/conf.d/custom.ini",
                       skip_linux=True, skip_volume=True),
            VolumeSpec("log_php", "logs/php", "/var/log/php"),
        ),
        environment=_php_env,
    ),
    ServiceEntry(
        "postfix",
        volumes=(
            VolumeSpec("/dev/log", "/dev/log", "/dev/log", skip_volume=True, skip_darwin=True),
            VolumeSpec("data_postfix", "services/postfix/spool", "/var/spool/postfix"),
            VolumeSpec("ssl_postfix", "services/postfix/ssl", "/etc/ssl/postfix"),
            VolumeSpec("config_postfix", "config/postfix", "/etc/postfix", skip_darwin=True),
        ),
        environment=_postfix_env,
    ),
    ServiceEntry(
        "db",
        volumes=(
            VolumeSpec("db_data", "services/mariadb/data", "/var/lib/mysql"),
            VolumeSpec("db_conf", "services/mariadb/conf", "/etc/mysql", skip_darwin=True),
            VolumeSpec("db_conf", "services/mariadb/conf/my.cnf", "/etc/mysql/my.cnf",
                       skip_linux=True, skip_volume=True),
            VolumeSpec("db_logs", "services/mariadb/logs", "/var/log/mysql"),
        ),
        enabled=lambda site: site.has_local_db,
    ),
)


def build_services(site: SiteParameters) -> List[ServiceDescriptor]:
    """Resolve the service table for a site.

    Every service gets the shared document root as its first mount.
    """
    services = []
    for entry in SERVICE_TABLE:
        if not entry.enabled(site):
            continue
        specs = (DOCUMENT_ROOT_VOLUME,) + entry.volumes
        env = entry.environment(site) if entry.environment else {}
        services.append(ServiceDescriptor(
            name=entry.name,
            volumes=tuple(spec.resolve(site) for spec in specs),
            environment=tuple(env.items()),
        ))
    return services


def build_volumes(site: SiteParameters) -> Dict[str, List[VolumeDescriptor]]:
    """Return the ordered ``service -> volumes`` table for a site."""
    return OrderedDict(
        (service.name, list(service.volumes)) for service in build_services(site)
    )
