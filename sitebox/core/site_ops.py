"""Day-2 operations on an existing site."""
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from sitebox.core.errors import ValidationError
from sitebox.core.logger import get_logger
from sitebox.core.params import LOCAL_DB_HOST, docker_style_prefix
from sitebox.core.record_store import SiteRecord, SiteRecordStore
from sitebox.services.docker import DockerRuntime

logger = get_logger(__name__)

RELOAD_COMMANDS: Dict[str, List[str]] = {
    "nginx": ["sh", "-c", "nginx -t && nginx -s reload"],
    "php": ["bash", "-c", "kill -USR2 1"],
}


def restartable_services(record: SiteRecord) -> List[str]:
    services = ["nginx", "php"]
    if record.app_sub_type == "mysql" and record.db_host == LOCAL_DB_HOST:
        services.append("db")
    return services


def site_info_rows(record: SiteRecord) -> List[Tuple[str, str]]:
    """Label/value rows describing a site, in display order."""
    scheme = "https://" if record.site_ssl else "http://"
    rows = [
        ("Site", f"{scheme}{record.site_url}"),
        ("Site Root", record.site_fs_path),
    ]
    if record.app_sub_type == "mysql":
        rows.append(("DB Host", record.db_host or ""))
        if record.db_root_password:
            rows.append(("DB Root Password", record.db_root_password))
        rows += [
            ("DB Name", record.db_name or ""),
            ("DB User", record.db_user or ""),
            ("DB Password", record.db_password or ""),
        ]
    aliases = [d for d in record.domains if d != record.site_url]
    rows += [
        ("Alias Domains", ",".join(aliases) or "None"),
        ("E-Mail", record.app_admin_email),
        ("SSL", "Enabled" if record.site_ssl else "Not Enabled"),
    ]
    if record.site_ssl:
        rows.append(("SSL Wildcard", "Yes" if record.site_ssl_wildcard else "No"))
    rows.append(("Cache", "Enabled" if record.cache_nginx_fullpage else "None"))
    return rows


class SiteOperations:
    """info / restart / reload for sites that have a record."""

    def __init__(self, records: SiteRecordStore, runtime: DockerRuntime):
        self.records = records
        self.runtime = runtime

    def get(self, site_url: str) -> SiteRecord:
        record = self.records.find(site_url)
        if not record:
            raise ValidationError(f"Site {site_url} does not exist.")
        return record

    def info(self, site_url: str) -> List[Tuple[str, str]]:
        return site_info_rows(self.get(site_url))

    @staticmethod
    def _select(site_url: str, requested: Optional[Sequence[str]], allowed: Sequence[str]) -> List[str]:
        if not requested:
            return list(allowed)
        unknown = [name for name in requested if name not in allowed]
        if unknown:
            raise ValidationError(
                f"Cannot act on {', '.join(unknown)} for {site_url}. "
                f"Valid services: {', '.join(allowed)}"
            )
        return list(requested)

    def restart(self, site_url: str, services: Optional[Sequence[str]] = None) -> List[str]:
        """Restart site containers (all whitelisted ones by default).

        Raises:
            ValidationError: Unknown site or service not allowed for it
        """
        record = self.get(site_url)
        selected = self._select(site_url, services, restartable_services(record))
        self.runtime.compose_restart(Path(record.site_fs_path), docker_style_prefix(site_url), selected)
        logger.info(f"✓ Restarted {', '.join(selected)} for {site_url}")
        return selected

    def reload(self, site_url: str, services: Optional[Sequence[str]] = None) -> List[str]:
        """Reload services inside running containers without restarting them."""
        record = self.get(site_url)
        selected = self._select(site_url, services, list(RELOAD_COMMANDS))
        root = Path(record.site_fs_path)
        project = docker_style_prefix(site_url)
        for service in selected:
            self.runtime.compose_exec(root, project, service, RELOAD_COMMANDS[service])
        logger.info(f"✓ Reloaded {', '.join(selected)} for {site_url}")
        return selected
