"""Tests for the files written into a site root."""
import stat

import pytest
import yaml

from sitebox.core.config import SiteboxConfig
from sitebox.manifest.renderer import ManifestRenderer
from sitebox.services.site_files import (
    ENV_FILE,
    MANIFEST_FILE,
    MARIADB_CONF,
    NGINX_CUSTOM_DIR,
    NGINX_MAIN_CONF,
    PHP_CUSTOM_INI,
    POSTFIX_MAIN_CF,
    SKELETON_DIRS,
    SiteFiles,
)


@pytest.fixture
def files(config):
    return SiteFiles(ManifestRenderer(), config)


def _darwin_files(config):
    darwin = SiteboxConfig(root_dir=config.root_dir, platform="darwin")
    return SiteFiles(ManifestRenderer(), darwin)


class TestSkeletonAndManifest:
    """Test directories and docker-compose.yml."""

    def test_skeleton(self, files, make_site):
        site = make_site("a.test")
        files.create_skeleton(site)

        for relative in SKELETON_DIRS:
            assert (site.site_fs_path / relative).is_dir()

    def test_manifest_https_switch(self, files, make_site):
        site = make_site("a.test", ssl="self")

        files.write_manifest(site, nohttps=True)
        plain = yaml.safe_load((site.site_fs_path / MANIFEST_FILE).read_text())
        files.write_manifest(site, nohttps=False)
        secure = yaml.safe_load((site.site_fs_path / MANIFEST_FILE).read_text())

        assert "HTTPS_METHOD=nohttps" in plain["services"]["nginx"]["environment"]
        assert "HTTPS_METHOD=redirect" in secure["services"]["nginx"]["environment"]


class TestEnv:
    """Test the .env file."""

    def test_plain_site(self, files, make_site):
        site = make_site("a.test")
        path = files.write_env(site)

        content = path.read_text()
        assert path == site.site_fs_path / ENV_FILE
        assert "VIRTUAL_HOST=a.test" in content
        assert "WORDPRESS_DB_HOST" not in content
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_local_db(self, files, make_site):
        site = make_site("a.test", with_db=True, local_db=True)
        content = files.write_env(site).read_text()

        assert f"MYSQL_ROOT_PASSWORD={site.database.root_password}" in content
        assert "WORDPRESS_DB_HOST=db\n" in content

    def test_remote_db_has_no_root_password(self, files, make_site):
        site = make_site("b.test", with_db=True, dbhost="db.example.net:3307", dbuser="app", dbpass="secret")
        content = files.write_env(site).read_text()

        assert "WORDPRESS_DB_HOST=db.example.net:3307" in content
        assert "MYSQL_ROOT_PASSWORD" not in content


class TestConfigFiles:
    """Test nginx, php, postfix and mariadb configuration."""

    def test_written(self, files, make_site):
        site = make_site("a.test", alias_domains="www.a.test")
        files.write_config_files(site)
        root = site.site_fs_path

        nginx = (root / NGINX_MAIN_CONF).read_text()
        assert "server_name a.test www.a.test;" in nginx
        assert "root /var/www/htdocs;" in nginx
        assert "redis_pass" not in nginx
        assert (root / NGINX_CUSTOM_DIR / "user.conf").exists()
        assert (root / NGINX_CUSTOM_DIR / "admin-tools.conf").exists()
        assert "myhostname = a.test" in (root / POSTFIX_MAIN_CF).read_text()
        assert "opcache.enable" in (root / PHP_CUSTOM_INI).read_text()
        assert not (root / MARIADB_CONF).exists()

    def test_redis_cache(self, files, make_site):
        site = make_site("a.test", cache=True)
        files.write_nginx_conf(site)

        nginx = (site.site_fs_path / NGINX_MAIN_CONF).read_text()
        assert "redis_pass global-redis:6379;" in nginx

    def test_php56_ini(self, files, make_site):
        site = make_site("a.test", php_version="5.6")
        files.write_php_ini(site)

        assert "always_populate_raw_post_data" in (site.site_fs_path / PHP_CUSTOM_INI).read_text()

    def test_public_dir(self, files, make_site):
        site = make_site("a.test", public_dir="public")
        files.write_nginx_conf(site)

        assert "root /var/www/htdocs/public;" in (site.site_fs_path / NGINX_MAIN_CONF).read_text()

    def test_mariadb_conf_on_darwin_only(self, config, make_site):
        site = make_site("a.test", with_db=True, local_db=True)

        assert _darwin_files(config).write_db_conf(site) == site.site_fs_path / MARIADB_CONF
        assert (site.site_fs_path / MARIADB_CONF).exists()

    def test_index(self, files, make_site):
        site = make_site("a.test", public_dir="public")
        path = files.write_index(site)

        assert path == site.site_fs_path / "app" / "htdocs" / "public" / "index.php"
