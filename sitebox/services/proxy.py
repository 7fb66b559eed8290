"""Global services and the per-site network attached to the shared proxy."""
from typing import List

from sitebox.core.config import SiteboxConfig
from sitebox.core.errors import ProvisioningError, RuntimeCommandError
from sitebox.core.logger import get_logger
from sitebox.core.params import CacheMode, DbMode, SiteParameters, docker_style_prefix
from sitebox.services.docker import SITE_URL_LABEL, DockerRuntime

logger = get_logger(__name__)


class ProxyNetwork:
    """Connects a site to the shared reverse proxy."""

    def __init__(self, runtime: DockerRuntime, config: SiteboxConfig):
        self.runtime = runtime
        self.config = config

    def required_services(self, site: SiteParameters) -> List[str]:
        """Global containers a site depends on."""
        services = [self.config.proxy_container]
        if site.cache_mode == CacheMode.SHARED:
            services.append(self.config.global_redis_container)
        if site.db_mode == DbMode.SHARED:
            services.append(self.config.global_db_container)
        return services

    def ensure_global_services(self, site: SiteParameters) -> None:
        """Start stopped global containers.

        Raises:
            ProvisioningError: If a required global container does not exist
        """
        for network in (self.config.frontend_network, self.config.backend_network):
            if not self.runtime.network_exists(network):
                self.runtime.create_network(network)
                logger.info(f"Created global network {network}")

        for container in self.required_services(site):
            if self.runtime.container_running(container):
                continue
            if not self.runtime.container_exists(container):
                raise ProvisioningError(
                    f"Global service {container} is not available. "
                    f"Set up the global services before creating sites."
                )
            logger.info(f"Starting global service {container}")
            self.runtime.start_container(container)

    def register_site(self, site_url: str) -> str:
        """Create the site network and attach the proxy to it.

        Returns:
            Name of the site network
        """
        network = docker_style_prefix(site_url)
        if not self.runtime.network_exists(network):
            self.runtime.create_network(network, labels={SITE_URL_LABEL: site_url})
        self.runtime.connect_network(network, self.config.proxy_container)
        logger.info(f"✓ Connected proxy to site network {network}")
        return network

    def unregister_site(self, site_url: str) -> None:
        """Detach the proxy and remove the site network if it exists."""
        network = docker_style_prefix(site_url)
        if not self.runtime.network_exists(network):
            logger.debug(f"Site network {network} does not exist")
            return
        try:
            self.runtime.disconnect_network(network, self.config.proxy_container)
        except RuntimeCommandError as e:
            logger.debug(f"Proxy was not attached to {network}: {e}")
        self.runtime.remove_network(network)
        logger.info(f"Removed site network {network}")
