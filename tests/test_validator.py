"""Tests for create option validation."""
import pytest

from sitebox.core.errors import ValidationError
from sitebox.core.params import CacheMode, DbMode, SSLMode
from sitebox.core.record_store import SiteRecord
from sitebox.core.validator import public_dir_path, resolve_php_version, site_db_user


def _store_site(records, url, **fields):
    records.create(SiteRecord(site_url=url, site_fs_path=f"/sites/{url}", **fields))


class TestHelpers:
    """Test pure helpers."""

    @pytest.mark.parametrize("requested,expected,changed", [
        ("7.4", "7.4", False),
        ("latest", "latest", False),
        ("5", "5.6", True),
        ("7", "7.4", True),
        ("8.9", "8.3", True),
        ("8.0", "latest", False),
    ])
    def test_php_version(self, requested, expected, changed):
        assert resolve_php_version(requested) == (expected, changed)

    @pytest.mark.parametrize("requested", ["4.4", "nine"])
    def test_php_version_unsupported(self, requested):
        with pytest.raises(ValidationError):
            resolve_php_version(requested)

    def test_db_user_is_bounded(self):
        user = site_db_user("x" * 80 + ".test")
        assert len(user) == 53 + 1 + 6
        assert user.startswith("x" * 53 + "-")

    def test_public_dir(self):
        assert public_dir_path(None) == "/var/www/htdocs"
        assert public_dir_path("/public/") == "/var/www/htdocs/public"

    def test_public_dir_escape(self):
        with pytest.raises(ValidationError):
            public_dir_path("../etc")


class TestSiteValidator:
    """Test the single validation pass."""

    def test_defaults(self, make_site, config):
        site = make_site("Example.Test/")

        assert site.site_url == "example.test"
        assert site.site_fs_path == config.sites_dir / "example.test"
        assert site.alias_domains == ("example.test",)
        assert site.ssl_mode == SSLMode.NONE
        assert site.database is None
        assert site.admin_email == "admin@example.test"
        assert site.cache_mode == CacheMode.NONE

    def test_existing_url_rejected(self, make_site, records):
        _store_site(records, "a.test")

        with pytest.raises(ValidationError, match="already exists"):
            make_site("a.test")

    def test_url_equal_to_existing_alias_rejected(self, make_site, records):
        """A new site may not take over another site's alias."""
        _store_site(records, "a.test", alias_domains="a.test,www.a.test")

        with pytest.raises(ValidationError, match="already used by site a.test"):
            make_site("www.a.test")

    def test_alias_collision_rejected(self, make_site, records):
        _store_site(records, "a.test")

        with pytest.raises(ValidationError):
            make_site("b.test", alias_domains="www.b.test,a.test")

    def test_shared_project_name_rejected(self, make_site, records):
        """Dots are dropped from project names so a.test and at.est clash."""
        _store_site(records, "at.est")

        with pytest.raises(ValidationError, match="docker project name 'atest' with site at.est"):
            make_site("a.test")

    @pytest.mark.parametrize("url", ["foo/bar", "../x", "a..b", "-a.test", "a_b.test", "a test"])
    def test_invalid_host_name_rejected(self, make_site, url):
        with pytest.raises(ValidationError, match="Invalid site name"):
            make_site(url)

    def test_invalid_alias_rejected(self, make_site):
        with pytest.raises(ValidationError, match="Invalid site name: ../etc"):
            make_site("b.test", alias_domains="www.b.test,../etc")

    def test_wildcard_alias_allowed(self, make_site):
        site = make_site("b.test", alias_domains="*.b.test")
        assert site.alias_domains == ("b.test", "*.b.test")

    def test_aliases_deduplicated(self, make_site):
        site = make_site("b.test", alias_domains="www.b.test, b.test,www.b.test")
        assert site.alias_domains == ("b.test", "www.b.test")

    def test_validation_has_no_side_effects(self, make_site, records, config):
        _store_site(records, "a.test")
        with pytest.raises(ValidationError):
            make_site("a.test")
        assert not config.sites_dir.exists()

    def test_unknown_ssl_mode(self, make_site):
        with pytest.raises(ValidationError, match="Unknown SSL mode"):
            make_site("a.test", ssl="maybe")

    def test_custom_ssl_requires_both_files(self, make_site, tmp_path):
        key = tmp_path / "a.key"
        key.write_text("key")

        with pytest.raises(ValidationError, match="both"):
            make_site("a.test", ssl="custom", ssl_key=str(key))

    def test_custom_ssl_files_must_exist(self, make_site, tmp_path):
        key = tmp_path / "a.key"
        key.write_text("key")

        with pytest.raises(ValidationError, match="does not exist"):
            make_site("a.test", ssl="custom", ssl_key=str(key), ssl_crt=str(tmp_path / "missing.crt"))

    def test_custom_ssl(self, make_site, tmp_path):
        key, crt = tmp_path / "a.key", tmp_path / "a.crt"
        key.write_text("key")
        crt.write_text("crt")

        site = make_site("a.test", ssl="custom", ssl_key=str(key), ssl_crt=str(crt))
        assert site.ssl_mode == SSLMode.CUSTOM
        assert site.ssl_crt == crt

    def test_key_without_custom_rejected(self, make_site, tmp_path):
        with pytest.raises(ValidationError, match="only valid with --ssl=custom"):
            make_site("a.test", ssl="self", ssl_key=str(tmp_path / "a.key"))

    def test_inherit_requires_parent(self, make_site):
        with pytest.raises(ValidationError, match="no parent site"):
            make_site("blog.example.test", ssl="inherit")

    def test_inherit_requires_wildcard_parent(self, make_site, records):
        _store_site(records, "example.test", site_ssl="le", site_ssl_wildcard=0)

        with pytest.raises(ValidationError, match="wildcard"):
            make_site("blog.example.test", ssl="inherit")

    def test_inherit(self, make_site, records):
        _store_site(records, "example.test", site_ssl="le", site_ssl_wildcard=1)

        site = make_site("blog.example.test", ssl="inherit")
        assert site.ssl_mode == SSLMode.INHERIT


class TestDatabaseResolution:
    """Test database defaults and remote credential rules."""

    def test_shared_db_defaults(self, make_site):
        site = make_site("my-site.test", with_db=True)
        db = site.database

        assert site.db_mode == DbMode.SHARED
        assert db.host == "global-db"
        assert db.port == "3306"
        assert db.name == "my_site_test"
        assert db.user.startswith("my-site.test-")
        assert db.password
        assert db.root_password == ""

    def test_local_db(self, make_site):
        site = make_site("a.test", with_db=True, local_db=True)

        assert site.db_mode == DbMode.LOCAL
        assert site.database.host == "db"
        assert site.database.root_password
        assert "db" in site.services()

    def test_remote_requires_credentials(self, make_site):
        with pytest.raises(ValidationError, match="--dbuser"):
            make_site("b.test", with_db=True, dbhost="db.example.net")

    def test_remote_host_with_port(self, make_site):
        site = make_site("b.test", with_db=True, dbhost="db.example.net:3307", dbuser="app", dbpass="secret")

        assert site.db_mode == DbMode.REMOTE
        assert site.database.host == "db.example.net"
        assert site.database.port == "3307"
        assert site.database.address == "db.example.net:3307"

    def test_credentials_not_in_repr(self, make_site):
        site = make_site("b.test", with_db=True, dbhost="db.example.net", dbuser="app", dbpass="secret")
        assert "secret" not in repr(site.database)
