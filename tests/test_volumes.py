"""Tests for the resource provisioner."""
import os

from sitebox.core.config import PLATFORM_DARWIN, PLATFORM_LINUX
from sitebox.manifest.descriptors import build_volumes
from sitebox.services.docker import SITE_URL_LABEL
from sitebox.services.volumes import ResourceProvisioner


class TestEnsureVolumes:
    """Test volume creation."""

    def test_creates_each_volume_once(self, docker, make_site):
        site = make_site("a.test")
        created = ResourceProvisioner(docker, platform=PLATFORM_LINUX).ensure_volumes(
            site.site_url, build_volumes(site)
        )

        assert created == [
            "atest_htdocs",
            "atest_config_nginx",
            "atest_log_nginx",
            "atest_config_php",
            "atest_log_php",
            "atest_data_postfix",
            "atest_ssl_postfix",
            "atest_config_postfix",
        ]
        assert all(docker.volumes[name]["labels"] == {SITE_URL_LABEL: "a.test"} for name in created)

    def test_idempotent(self, docker, make_site):
        """Running twice creates nothing new and does not fail."""
        site = make_site("a.test", with_db=True, local_db=True)
        provisioner = ResourceProvisioner(docker, platform=PLATFORM_LINUX)

        first = provisioner.ensure_volumes(site.site_url, build_volumes(site))
        volumes_after_first = dict(docker.volumes)
        second = provisioner.ensure_volumes(site.site_url, build_volumes(site))

        assert first
        assert second == []
        assert docker.volumes == volumes_after_first

    def test_symlinks_host_paths(self, docker, make_site):
        site = make_site("a.test")
        site.site_fs_path.mkdir(parents=True)
        ResourceProvisioner(docker, platform=PLATFORM_LINUX).ensure_volumes(site.site_url, build_volumes(site))

        app = site.site_fs_path / "app"
        assert app.is_symlink()
        assert os.readlink(app) == docker.volume_mountpoint("atest_htdocs")

    def test_existing_host_path_kept(self, docker, make_site):
        site = make_site("a.test")
        (site.site_fs_path / "logs" / "nginx").mkdir(parents=True)
        ResourceProvisioner(docker, platform=PLATFORM_LINUX).ensure_volumes(site.site_url, build_volumes(site))

        assert not (site.site_fs_path / "logs" / "nginx").is_symlink()

    def test_darwin_skips_linux_only_volumes(self, docker, make_site):
        site = make_site("a.test")
        created = ResourceProvisioner(docker, platform=PLATFORM_DARWIN).ensure_volumes(
            site.site_url, build_volumes(site)
        )

        assert "atest_config_nginx" not in created
        assert "atest_config_postfix" not in created
        assert "atest_htdocs" in created
