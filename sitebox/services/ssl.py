"""TLS certificates for sites, stored where the shared proxy reads them."""
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional

from sitebox.core.config import SiteboxConfig
from sitebox.core.errors import ProvisioningError, RuntimeCommandError
from sitebox.core.logger import get_logger
from sitebox.core.params import SiteParameters, SSLMode

logger = get_logger(__name__)

LETSENCRYPT_LIVE = Path("/etc/letsencrypt/live")


def parent_domain(site_url: str) -> Optional[str]:
    """``blog.example.com`` -> ``example.com``; None for a bare domain."""
    if site_url.count(".") < 2:
        return None
    return site_url.split(".", 1)[1]


class CertificateManager:
    """Issues or installs certificates as ``<certs_dir>/<site>.crt|.key``."""

    def __init__(self, config: SiteboxConfig, mock: bool = False):
        self.config = config
        self.mock = mock
        self.certs_dir = Path(config.certs_dir)

    def cert_paths(self, site_url: str):
        return self.certs_dir / f"{site_url}.crt", self.certs_dir / f"{site_url}.key"

    def _run(self, cmd: List[str]) -> None:
        if self.mock:
            logger.info(f"MOCK: Would run {' '.join(cmd)}")
            return
        try:
            subprocess.run(
                cmd, check=True, capture_output=True, text=True, timeout=self.config.command_timeout
            )
        except subprocess.CalledProcessError as e:
            raise RuntimeCommandError(
                f"Command failed: {' '.join(cmd)}: {(e.stderr or '').strip()}", command=cmd, stderr=e.stderr
            ) from e
        except subprocess.TimeoutExpired as e:
            raise RuntimeCommandError(f"Command timed out: {' '.join(cmd)}", command=cmd) from e
        except FileNotFoundError as e:
            raise RuntimeCommandError(f"{cmd[0]} not found in PATH", command=cmd) from e

    def issue(self, site: SiteParameters) -> None:
        """Put a certificate in place for the site's SSL mode."""
        if not site.is_ssl:
            return
        self.certs_dir.mkdir(parents=True, exist_ok=True)
        if site.ssl_mode == SSLMode.SELF:
            self.self_signed(site.site_url, site.all_domains, wildcard=site.ssl_wildcard)
        elif site.ssl_mode == SSLMode.CUSTOM:
            self.install_custom(site.site_url, site.ssl_crt, site.ssl_key)
        elif site.ssl_mode == SSLMode.INHERIT:
            self.check_parent_certs(site.site_url)
        elif site.ssl_mode == SSLMode.LE:
            self.letsencrypt(site)
        logger.info(f"✓ Certificate ready for {site.site_url} ({site.ssl_mode.value})")

    def self_signed(self, site_url: str, domains, wildcard: bool = False) -> None:
        crt, key = self.cert_paths(site_url)
        names = list(domains)
        if wildcard:
            names.append(f"*.{site_url}")
        san = ",".join(f"DNS:{name}" for name in names)
        self._run([
            "openssl", "req", "-x509", "-nodes", "-newkey", "rsa:2048", "-days", "3650",
            "-subj", f"/CN={site_url}",
            "-addext", f"subjectAltName={san}",
            "-keyout", str(key), "-out", str(crt),
        ])

    def install_custom(self, site_url: str, crt_source: Path, key_source: Path) -> None:
        crt, key = self.cert_paths(site_url)
        if self.mock:
            logger.info(f"MOCK: Would copy {crt_source} and {key_source} to {self.certs_dir}")
            return
        shutil.copyfile(crt_source, crt)
        shutil.copyfile(key_source, key)

    def check_parent_certs(self, site_url: str) -> None:
        """Inherited sites are served by the parent's wildcard certificate."""
        parent = parent_domain(site_url)
        if not parent:
            raise ProvisioningError(f"{site_url} has no parent domain to inherit a certificate from.")
        crt, key = self.cert_paths(parent)
        if not self.mock and not (crt.exists() and key.exists()):
            raise ProvisioningError(
                f"Parent site {parent} has no certificate in {self.certs_dir}."
            )

    def letsencrypt(self, site: SiteParameters) -> None:
        cmd = [
            "certbot", "certonly", "--non-interactive", "--agree-tos",
            "--email", site.admin_email,
            "--webroot", "--webroot-path", str(site.webroot),
            "--cert-name", site.site_url,
        ]
        for domain in site.all_domains:
            cmd += ["-d", domain]
        self._run(cmd)
        if self.mock:
            return
        live = LETSENCRYPT_LIVE / site.site_url
        crt, key = self.cert_paths(site.site_url)
        shutil.copyfile(live / "fullchain.pem", crt)
        shutil.copyfile(live / "privkey.pem", key)

    def remove(self, site_url: str) -> None:
        """Delete the site's own certificate files (never a parent's)."""
        for path in self.cert_paths(site_url):
            if path.exists():
                path.unlink()
                logger.debug(f"Removed {path}")
