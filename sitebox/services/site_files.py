"""Configuration files written into a site's root."""
import os
from pathlib import Path
from typing import Any, Dict, Optional

from sitebox import __version__
from sitebox.core.config import PLATFORM_DARWIN, SiteboxConfig
from sitebox.core.logger import get_logger
from sitebox.core.params import SiteParameters
from sitebox.manifest.descriptors import build_volumes
from sitebox.manifest.renderer import ManifestRenderer, manifest_context

logger = get_logger(__name__)

MANIFEST_FILE = "docker-compose.yml"
ENV_FILE = ".env"
NGINX_MAIN_CONF = "config/nginx/conf.d/main.conf"
NGINX_CUSTOM_DIR = "config/nginx/custom"
PHP_CUSTOM_INI = "config/php/php/conf.d/custom.ini"
POSTFIX_MAIN_CF = "config/postfix/main.cf"
MARIADB_CONF = "services/mariadb/conf/my.cnf"
SKELETON_DIRS = ("config", "logs", "services/postfix", "services/mariadb")


class SiteFiles:
    """Renders and writes the files a site's containers read."""

    def __init__(self, renderer: ManifestRenderer, config: SiteboxConfig):
        self.renderer = renderer
        self.config = config
        self.platform = config.resolved_platform()

    @staticmethod
    def _write(path: Path, content: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        logger.debug(f"Wrote {path}")
        return path

    def _render_to(self, site: SiteParameters, relative: str, template: str,
                   context: Optional[Dict[str, Any]] = None) -> Path:
        content = self.renderer.render_template(template, context or {})
        return self._write(site.site_fs_path / relative, content)

    def create_skeleton(self, site: SiteParameters) -> None:
        """Parent directories of the volume links; the links themselves come later."""
        for relative in SKELETON_DIRS:
            (site.site_fs_path / relative).mkdir(parents=True, exist_ok=True)

    def write_manifest(self, site: SiteParameters, nohttps: bool = True) -> Path:
        """Render docker-compose.yml; ``nohttps`` keeps nginx on plain HTTP."""
        context = manifest_context(site, self.platform, self.config, nohttps=nohttps)
        manifest = self.renderer.render(context, build_volumes(site))
        return self._write(site.site_fs_path / MANIFEST_FILE, manifest)

    def env_context(self, site: SiteParameters) -> Dict[str, Any]:
        context: Dict[str, Any] = {
            'virtual_host': site.site_url,
            'user_id': os.getuid(),
            'group_id': os.getgid(),
            'database': None,
        }
        if site.database:
            db = site.database
            context['database'] = {
                'local': site.has_local_db,
                'root_password': db.root_password,
                'name': db.name,
                'user': db.user,
                'password': db.password,
                'address': db.address,
            }
        return context

    def write_env(self, site: SiteParameters) -> Path:
        path = self._render_to(site, ENV_FILE, "env.j2", self.env_context(site))
        path.chmod(0o600)
        return path

    def write_nginx_conf(self, site: SiteParameters) -> None:
        cached = bool(site.cache_host)
        self._render_to(site, NGINX_MAIN_CONF, "nginx/main.conf.j2", {
            'site_url': site.site_url,
            'server_name': ' '.join(site.all_domains),
            'document_root': site.public_dir.rstrip('/'),
            'include_php_conf': not cached,
            'include_redis_conf': cached,
            'cache_host': site.cache_host,
        })
        for name in ("user.conf", "admin-tools.conf"):
            self._render_to(site, f"{NGINX_CUSTOM_DIR}/{name}", f"nginx/{name}")

    def write_php_ini(self, site: SiteParameters) -> Path:
        template = "php/php-56.ini" if site.php_version == "5.6" else "php/php.ini"
        return self._render_to(site, PHP_CUSTOM_INI, template)

    def write_postfix_conf(self, site: SiteParameters) -> Path:
        return self._render_to(site, POSTFIX_MAIN_CF, "postfix/main.cf.j2", {'site_url': site.site_url})

    def write_db_conf(self, site: SiteParameters) -> Optional[Path]:
        """my.cnf is bind-mounted only on macOS, where the config volume is skipped."""
        if not site.has_local_db or self.platform != PLATFORM_DARWIN:
            return None
        return self._render_to(site, MARIADB_CONF, "mariadb/my.cnf")

    def write_index(self, site: SiteParameters) -> Path:
        webroot = site.webroot
        return self._write(webroot / "index.php", self.renderer.render_template("index.php.j2", {
            'version': f"v{__version__}",
            'site_src_root': str(webroot),
        }))

    def write_config_files(self, site: SiteParameters) -> None:
        """Everything the containers read at start, except the manifest and .env."""
        self.write_postfix_conf(site)
        self.write_nginx_conf(site)
        self.write_php_ini(site)
        self.write_db_conf(site)
        logger.info("✓ Configuration files copied")
