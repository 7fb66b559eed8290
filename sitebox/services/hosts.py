"""Hosts-file entries for sites that are only reachable locally."""
from pathlib import Path

from sitebox.core.logger import get_logger

logger = get_logger(__name__)

ENTRY_MARKER = "# sitebox"


class HostsFile:
    """Adds and removes ``127.0.0.1 <site>`` lines tagged with a marker.

    Only lines carrying the marker are ever removed, so entries written by
    hand for the same name are left alone.
    """

    def __init__(self, path: Path, mock: bool = False, address: str = "127.0.0.1"):
        self.path = Path(path)
        self.mock = mock
        self.address = address

    def _entry(self, site_url: str) -> str:
        return f"{self.address}\t{site_url}\t{ENTRY_MARKER}"

    @staticmethod
    def _is_entry_for(line: str, site_url: str) -> bool:
        if ENTRY_MARKER not in line:
            return False
        hostnames = line.split("#", 1)[0].split()[1:]
        return site_url in hostnames

    def has_entry(self, site_url: str) -> bool:
        if not self.path.exists():
            return False
        return any(self._is_entry_for(line, site_url) for line in self.path.read_text().splitlines())

    def add(self, site_url: str) -> bool:
        """Add an entry; returns False if it was already present."""
        if self.mock:
            logger.info(f"MOCK: Would add {site_url} to {self.path}")
            return True
        if self.has_entry(site_url):
            return False
        content = self.path.read_text() if self.path.exists() else ""
        if content and not content.endswith("\n"):
            content += "\n"
        self.path.write_text(content + self._entry(site_url) + "\n")
        logger.info(f"✓ Added {site_url} to {self.path}")
        return True

    def remove(self, site_url: str) -> bool:
        """Remove the entry; returns False if there was none."""
        if self.mock:
            logger.info(f"MOCK: Would remove {site_url} from {self.path}")
            return True
        if not self.has_entry(site_url):
            return False
        lines = [
            line for line in self.path.read_text().splitlines()
            if not self._is_entry_for(line, site_url)
        ]
        self.path.write_text("\n".join(lines) + ("\n" if lines else ""))
        logger.info(f"Removed {site_url} from {self.path}")
        return True
