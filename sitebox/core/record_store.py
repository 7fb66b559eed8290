"""Persistence of provisioned site records."""
import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sitebox.core.errors import RecordExistsError, RecordWriteError
from sitebox.core.lock import LockError, record_lock
from sitebox.core.logger import get_logger
from sitebox.core.params import SiteParameters

logger = get_logger(__name__)

STORE_VERSION = "1.0"


class SiteRecord(BaseModel):
    """Persisted configuration of a successfully provisioned site."""

    model_config = ConfigDict(extra='forbid', frozen=True)

    site_url: str
    site_type: str = "php"
    app_sub_type: str = "php"
    app_admin_email: str = ""
    cache_nginx_browser: int = 0
    cache_nginx_fullpage: int = 0
    cache_mysql_query: int = 0
    cache_host: str = ""
    alias_domains: str = ""
    site_fs_path: str
    site_ssl: Optional[str] = None
    site_ssl_wildcard: int = 0
    php_version: str = "latest"
    site_container_fs_path: str = "/var/www/htdocs"
    created_on: str = Field(default_factory=lambda: datetime.now().strftime('%Y-%m-%d %H:%M:%S'))
    db_name: Optional[str] = None
    db_user: Optional[str] = None
    db_host: Optional[str] = None
    db_port: Optional[str] = None
    db_password: Optional[str] = None
    db_root_password: Optional[str] = None

    @field_validator('site_url')
    @classmethod
    def validate_site_url(cls, v):
        if not v or v != v.strip().lower():
            raise ValueError(f"Site URL must be a non-empty lower-case name. Got: {v!r}")
        return v

    @property
    def domains(self) -> List[str]:
        """Primary URL and every alias domain."""
        names = [d for d in self.alias_domains.split(',') if d]
        if self.site_url not in names:
            names.insert(0, self.site_url)
        return names

    @classmethod
    def from_site(cls, site: SiteParameters, created_on: Optional[str] = None) -> "SiteRecord":
        """Build the record for a provisioned site."""
        cached = int(site.cache_mode.value != "none")
        data = {
            'site_url': site.site_url,
            'app_sub_type': site.app_sub_type,
            'app_admin_email': site.admin_email,
            'cache_nginx_browser': cached,
            'cache_nginx_fullpage': cached,
            'cache_mysql_query': cached,
            'cache_host': site.cache_host,
            'alias_domains': ','.join(site.all_domains),
            'site_fs_path': str(site.site_fs_path),
            'site_ssl': site.ssl_mode.value if site.is_ssl else None,
            'site_ssl_wildcard': int(site.ssl_wildcard),
            'php_version': site.php_version,
            'site_container_fs_path': site.public_dir.rstrip('/'),
        }
        if created_on:
            data['created_on'] = created_on
        if site.database:
            db = site.database
            data.update({
                'db_name': db.name,
                'db_user': db.user,
                'db_host': db.host,
                'db_port': db.port,
                'db_password': db.password,
                'db_root_password': db.root_password,
            })
        return cls(**data)


class SiteRecordStore:
    """JSON-file store of site records.

    Writes are atomic (temp file + rename) and every read-check-write cycle
    runs under an exclusive file lock, so `create` failing on an existing URL
    is a reliable guard against concurrent runs for the same site.
    """

    def __init__(self, records_file: Path, lock_file: Optional[Path] = None, lock_timeout: float = 10.0):
        self.records_file = Path(records_file)
        self.lock_file = Path(lock_file) if lock_file else self.records_file.with_suffix('.lock')
        self.lock_timeout = lock_timeout

    def _load(self) -> Dict[str, dict]:
        if not self.records_file.exists():
            return {}
        try:
            with open(self.records_file, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            raise RecordWriteError(f"Site record store {self.records_file} is unreadable: {e}") from e
        return data.get('sites', {})

    def _save(self, sites: Dict[str, dict]) -> None:
        self.records_file.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.records_file.with_suffix('.tmp')
        with open(temp_file, 'w') as f:
            json.dump({'version': STORE_VERSION, 'sites': sites}, f, indent=2, sort_keys=True)
        temp_file.rename(self.records_file)
        logger.debug(f"Saved site records to {self.records_file}")

    def find(self, site_url: str) -> Optional[SiteRecord]:
        data = self._load().get(site_url)
        return SiteRecord(**data) if data else None

    def all(self) -> List[SiteRecord]:
        return [SiteRecord(**data) for _, data in sorted(self._load().items())]

    def find_by_domain(self, domain: str) -> Optional[SiteRecord]:
        """Return the record whose URL or alias list contains ``domain``."""
        for record in self.all():
            if domain in record.domains:
                return record
        return None

    def create(self, record: SiteRecord) -> SiteRecord:
        """Persist a new record.

        Raises:
            RecordExistsError: A record for the same URL already exists
            RecordWriteError: The store could not be locked, read or written
        """
        try:
            with record_lock(self.lock_file, timeout=self.lock_timeout):
                sites = self._load()
                if record.site_url in sites:
                    raise RecordExistsError(f"Site {record.site_url} already exists.")
                sites[record.site_url] = record.model_dump()
                self._save(sites)
        except (LockError, OSError) as e:
            raise RecordWriteError(f"Error creating site entry for {record.site_url}: {e}") from e
        logger.info(f"Site entry created for {record.site_url}")
        return record

    def delete(self, site_url: str) -> bool:
        """Remove a record; returns False when there was nothing to remove."""
        try:
            with record_lock(self.lock_file, timeout=self.lock_timeout):
                sites = self._load()
                if site_url not in sites:
                    return False
                del sites[site_url]
                self._save(sites)
        except (LockError, OSError) as e:
            raise RecordWriteError(f"Error removing site entry for {site_url}: {e}") from e
        return True
