"""Creation of the named volumes a site manifest refers to."""
import os
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from sitebox.core.config import current_platform
from sitebox.core.logger import get_logger
from sitebox.core.params import docker_style_prefix
from sitebox.manifest.descriptors import VolumeDescriptor
from sitebox.manifest.renderer import volume_name
from sitebox.services.docker import SITE_URL_LABEL, DockerRuntime

logger = get_logger(__name__)


class ResourceProvisioner:
    """Ensures site volumes exist and are reachable under the site root.

    Example:
        provisioner = ResourceProvisioner(runtime)
        created = provisioner.ensure_volumes("example.test", build_volumes(site))
    """

    def __init__(self, runtime: DockerRuntime, platform: Optional[str] = None):
        self.runtime = runtime
        self.platform = platform or current_platform()

    def ensure_volumes(
        self,
        site_url: str,
        volume_table: Mapping[str, Sequence[VolumeDescriptor]],
    ) -> List[str]:
        """Create every missing volume of the table.

        Args:
            site_url: Site the volumes belong to (used for prefix and label)
            volume_table: Ordered ``service -> volumes`` table

        Returns:
            Docker names of the volumes created by this call

        Raises:
            RuntimeCommandError: If a docker command fails
        """
        prefix = docker_style_prefix(site_url)
        labels = {SITE_URL_LABEL: site_url}
        seen = set()
        created = []

        for volumes in volume_table.values():
            for volume in volumes:
                if not volume.needs_registration(self.platform) or volume.name in seen:
                    continue
                seen.add(volume.name)

                name = volume_name(prefix, volume.name)
                if self.runtime.volume_exists(name):
                    logger.debug(f"Volume {name} already exists")
                else:
                    self.runtime.create_volume(name, labels=labels)
                    created.append(name)
                    logger.debug(f"Created volume {name}")

                self._link_host_path(Path(volume.host_path), name)

        if created:
            logger.info(f"✓ Created {len(created)} volume(s) for {site_url}")
        return created

    def _link_host_path(self, host_path: Path, name: str) -> None:
        """Point ``host_path`` at the volume's mountpoint unless it already exists."""
        if host_path.exists() or host_path.is_symlink():
            return
        mountpoint = self.runtime.volume_mountpoint(name)
        if self.runtime.mock:
            logger.info(f"MOCK: Would link {host_path} -> {mountpoint}")
            return
        host_path.parent.mkdir(parents=True, exist_ok=True)
        os.symlink(mountpoint, host_path)
