"""Single validation pass turning raw create options into SiteParameters."""
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from sitebox.core.config import SiteboxConfig
from sitebox.core.errors import ValidationError
from sitebox.core.logger import get_logger
from sitebox.core.params import (
    DEFAULT_DB_PORT,
    DOCUMENT_ROOT,
    PHP_ALIASES,
    LOCAL_DB_HOST,
    PHP_FALLBACKS,
    SUPPORTED_PHP_VERSIONS,
    CacheMode,
    DatabaseCredentials,
    SiteParameters,
    SSLMode,
    docker_style_prefix,
    random_password,
)
from sitebox.core.record_store import SiteRecordStore
from sitebox.services.ssl import parent_domain

logger = get_logger(__name__)

HOST_LABEL = r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"
HOST_NAME_RE = re.compile(r"^(?=.{1,253}$)" + HOST_LABEL + r"(?:\." + HOST_LABEL + r")*$")
WILDCARD_PREFIX = "*."


@dataclass
class SiteRequest:
    """Create options as given on the command line (nothing checked yet)."""

    site_url: str
    cache: bool = False
    local_cache: bool = False
    php_version: str = "latest"
    alias_domains: str = ""
    ssl: Optional[str] = None
    ssl_key: Optional[str] = None
    ssl_crt: Optional[str] = None
    wildcard: bool = False
    with_db: bool = False
    local_db: bool = False
    dbname: Optional[str] = None
    dbuser: Optional[str] = None
    dbpass: Optional[str] = None
    dbhost: Optional[str] = None
    admin_email: Optional[str] = None
    public_dir: Optional[str] = None
    skip_status_check: bool = False
    skip_db_check: bool = False
    force: bool = False


def normalize_site_url(url: str) -> str:
    return url.strip().rstrip('/').lower()


def check_host_name(domain: str, allow_wildcard: bool = False) -> None:
    """Reject anything that is not a plain DNS host name."""
    name = domain
    if allow_wildcard and name.startswith(WILDCARD_PREFIX):
        name = name[len(WILDCARD_PREFIX):]
    if not HOST_NAME_RE.match(name):
        raise ValidationError(f"Invalid site name: {domain}")


def resolve_php_version(version: str) -> Tuple[str, bool]:
    """Map a requested PHP version onto a supported one.

    Returns:
        Tuple of (version, changed) where changed means a fallback was used

    Raises:
        ValidationError: If the major version is not supported at all
    """
    requested = str(version).strip()
    if requested in PHP_ALIASES:
        return PHP_ALIASES[requested], False
    if requested in SUPPORTED_PHP_VERSIONS:
        return requested, False
    try:
        major = int(float(requested))
    except ValueError:
        raise ValidationError(f"Unsupported PHP version: {requested}")
    if major not in PHP_FALLBACKS:
        raise ValidationError(f"Unsupported PHP version: {requested}")
    return PHP_FALLBACKS[major], True


def site_db_user(site_url: str) -> str:
    """Generate a database user name for a site."""
    return f"{site_url[:53]}-{random_password(6)}"


def public_dir_path(public_dir: Optional[str]) -> str:
    """Container path of the document root for an optional sub-directory."""
    if not public_dir:
        return DOCUMENT_ROOT
    relative = public_dir.strip().strip('/')
    if '..' in relative.split('/'):
        raise ValidationError(f"Public dir must stay inside htdocs. Got: {public_dir}")
    return f"{DOCUMENT_ROOT}/{relative}" if relative else DOCUMENT_ROOT


class SiteValidator:
    """Validates create options against existing records and the filesystem."""

    def __init__(self, records: SiteRecordStore, config: SiteboxConfig):
        self.records = records
        self.config = config

    def validate(self, request: SiteRequest) -> SiteParameters:
        """Validate and resolve every create option.

        Raises:
            ValidationError: On the first problem found; nothing has been
                committed at this point so no rollback is needed.
        """
        site_url = normalize_site_url(request.site_url)
        if not site_url:
            raise ValidationError("Site name is required.")
        check_host_name(site_url)

        if self.records.find(site_url):
            raise ValidationError(
                f"Site {site_url} already exists. If you want to re-create it "
                f"please delete the older one first."
            )

        aliases = self._parse_aliases(request.alias_domains, site_url)
        self._check_domains_free((site_url,) + aliases)
        self._check_project_name_free(site_url)

        php_version, _ = resolve_php_version(request.php_version)
        ssl_mode, ssl_key, ssl_crt = self._resolve_ssl(request, site_url)

        cache_mode = CacheMode.NONE
        if request.cache:
            cache_mode = CacheMode.LOCAL if request.local_cache else CacheMode.SHARED

        return SiteParameters(
            site_url=site_url,
            site_fs_path=self.config.site_root(site_url),
            php_version=php_version,
            cache_mode=cache_mode,
            alias_domains=(site_url,) + aliases,
            ssl_mode=ssl_mode,
            ssl_wildcard=request.wildcard,
            ssl_key=ssl_key,
            ssl_crt=ssl_crt,
            database=self._resolve_database(request, site_url),
            admin_email=(request.admin_email or f"admin@{site_url}").lower(),
            public_dir=public_dir_path(request.public_dir),
            skip_status_check=request.skip_status_check,
            skip_db_check=request.skip_db_check,
            force=request.force,
            global_redis_host=self.config.global_redis_host,
        )

    @staticmethod
    def _parse_aliases(alias_domains: str, site_url: str) -> Tuple[str, ...]:
        aliases: List[str] = []
        for domain in (alias_domains or '').split(','):
            domain = normalize_site_url(domain)
            if domain:
                check_host_name(domain, allow_wildcard=True)
            if domain and domain != site_url and domain not in aliases:
                aliases.append(domain)
        return tuple(aliases)

    def _check_domains_free(self, domains: Tuple[str, ...]) -> None:
        for domain in domains:
            owner = self.records.find_by_domain(domain)
            if owner:
                raise ValidationError(
                    f"Domain {domain} is already used by site {owner.site_url}."
                )

    def _check_project_name_free(self, site_url: str) -> None:
        """Two sites must never share compose project, network and volume names."""
        prefix = docker_style_prefix(site_url)
        for record in self.records.all():
            if docker_style_prefix(record.site_url) == prefix:
                raise ValidationError(
                    f"Site {site_url} would share the docker project name '{prefix}' "
                    f"with site {record.site_url}."
                )

    def _resolve_ssl(self, request: SiteRequest, site_url: str):
        if not request.ssl:
            return SSLMode.NONE, None, None
        try:
            ssl_mode = SSLMode(request.ssl)
        except ValueError:
            valid = ', '.join(m.value for m in SSLMode)
            raise ValidationError(f"Unknown SSL mode '{request.ssl}'. Valid modes: {valid}")

        if ssl_mode == SSLMode.CUSTOM:
            if not request.ssl_key or not request.ssl_crt:
                raise ValidationError("Custom SSL requires both --ssl-key and --ssl-crt.")
            key, crt = Path(request.ssl_key), Path(request.ssl_crt)
            for path in (key, crt):
                if not path.is_file():
                    raise ValidationError(f"SSL file {path} does not exist.")
            return ssl_mode, key, crt

        if request.ssl_key or request.ssl_crt:
            raise ValidationError("--ssl-key and --ssl-crt are only valid with --ssl=custom.")

        if ssl_mode == SSLMode.INHERIT:
            self._check_parent_certs(site_url)
        return ssl_mode, None, None

    def _check_parent_certs(self, site_url: str) -> None:
        """An inherited certificate must come from a wildcard parent site."""
        parent = parent_domain(site_url)
        parent_record = self.records.find(parent) if parent else None
        if not parent_record or not parent_record.site_ssl:
            raise ValidationError(
                f"Cannot inherit certificate: no parent site with SSL found for {site_url}."
            )
        if not parent_record.site_ssl_wildcard:
            raise ValidationError(
                f"Cannot inherit certificate: parent site {parent} does not have a wildcard certificate."
            )

    def _resolve_database(self, request: SiteRequest, site_url: str) -> Optional[DatabaseCredentials]:
        if not request.with_db:
            return None

        name = request.dbname or site_url.replace('.', '_').replace('-', '_')
        host = request.dbhost or self.config.global_db_host
        port = DEFAULT_DB_PORT
        root_password = ''

        if request.local_db:
            host = LOCAL_DB_HOST
            root_password = random_password()
        elif host != self.config.global_db_host:
            if not request.dbuser or not request.dbpass:
                raise ValidationError("`--dbuser` and `--dbpass` are required for remote db host.")
            if ':' in host:
                host, _, given_port = host.partition(':')
                port = given_port or DEFAULT_DB_PORT
            if not host:
                raise ValidationError("Database host is empty.")

        return DatabaseCredentials(
            host=host,
            port=port,
            user=request.dbuser or site_db_user(site_url),
            password=request.dbpass or random_password(),
            name=name,
            root_password=root_password,
            global_host=self.config.global_db_host,
        )
