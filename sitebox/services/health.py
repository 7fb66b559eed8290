"""HTTP readiness probe for a freshly started site."""
import requests

from sitebox.core.config import SiteboxConfig
from sitebox.core.errors import ProvisioningError
from sitebox.core.logger import get_logger
from sitebox.core.retry import retry

logger = get_logger(__name__)

HEALTHY_STATUS = (200, 301, 302, 307, 308)


class SiteNotReady(ProvisioningError):
    """The site did not answer with a healthy status."""


class SiteHealthCheck:
    """Polls the proxy with the site's Host header until it answers."""

    def __init__(self, config: SiteboxConfig, mock: bool = False, proxy_url: str = "http://127.0.0.1"):
        self.config = config
        self.mock = mock
        self.proxy_url = proxy_url

    @retry(attempts=10, delay=3.0, exceptions=(SiteNotReady,))
    def _probe(self, site_url: str) -> int:
        try:
            response = requests.get(
                self.proxy_url,
                headers={"Host": site_url},
                timeout=self.config.http_timeout,
                allow_redirects=False,
            )
        except requests.RequestException as e:
            raise SiteNotReady(f"{site_url} is not reachable: {e}") from e
        if response.status_code not in HEALTHY_STATUS:
            raise SiteNotReady(f"{site_url} answered with status {response.status_code}")
        return response.status_code

    def check(self, site_url: str) -> int:
        """Wait for the site to answer.

        Returns:
            The HTTP status of the successful probe

        Raises:
            SiteNotReady: After all attempts failed
        """
        if self.mock:
            logger.info(f"MOCK: Would check http://{site_url}")
            return 200
        logger.info(f"Checking site status of {site_url}")
        status = self._probe(
            site_url,
            _attempts=self.config.status_check_attempts,
            _delay=self.config.status_check_interval,
        )
        logger.info(f"✓ {site_url} is up (HTTP {status})")
        return status
