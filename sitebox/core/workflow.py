"""Staged site provisioning with level-keyed rollback.

The run advances a local progress level (see ``Level``) as each stage starts
committing side effects. Any failure, including SIGINT/SIGTERM, lands in one
handler that rolls back everything up to the level reached and raises
ProvisioningFailed. The site record is written only after every stage
succeeded.
"""
import signal
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence

from sitebox.core.config import PLATFORM_DARWIN, SiteboxConfig
from sitebox.core.errors import (
    ProvisioningError,
    ProvisioningFailed,
    ProvisioningInterrupted,
    RecordExistsError,
    RecordWriteError,
)
from sitebox.core.logger import get_logger
from sitebox.core.params import DbMode, Level, SiteParameters, SSLMode
from sitebox.core.record_store import SiteRecord, SiteRecordStore
from sitebox.core.rollback import RollbackEngine, RollbackReport
from sitebox.manifest.descriptors import build_volumes
from sitebox.manifest.renderer import ManifestRenderer
from sitebox.services.database import DatabaseBootstrapper, DbBootstrapResult
from sitebox.services.docker import DockerRuntime
from sitebox.services.health import SiteHealthCheck
from sitebox.services.hosts import HostsFile
from sitebox.services.proxy import ProxyNetwork
from sitebox.services.site_files import SiteFiles
from sitebox.services.ssl import CertificateManager
from sitebox.services.volumes import ResourceProvisioner

logger = get_logger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _in_main_thread() -> bool:
    return threading.current_thread() is threading.main_thread()


@contextmanager
def interrupt_guard(signals: Sequence[int] = HANDLED_SIGNALS) -> Iterator[None]:
    """Turn the given signals into ProvisioningInterrupted while active.

    Signal handlers can only be installed from the main thread; elsewhere
    this is a no-op.
    """
    if not _in_main_thread():
        yield
        return

    def _raise(signum, frame):
        raise ProvisioningInterrupted(signum)

    previous = {signum: signal.signal(signum, _raise) for signum in signals}
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


@contextmanager
def shield_signals(signals: Sequence[int] = HANDLED_SIGNALS) -> Iterator[None]:
    """Ignore the given signals while rollback runs."""
    if not _in_main_thread():
        yield
        return

    previous = {signum: signal.signal(signum, signal.SIG_IGN) for signum in signals}
    try:
        yield
    finally:
        for signum, handler in previous.items():
            signal.signal(signum, handler)


@dataclass
class ProvisioningResult:
    site: SiteParameters
    level: Level
    record: SiteRecord
    db_result: DbBootstrapResult


class ProvisioningWorkflow:
    """Creates one site from validated parameters.

    Example:
        workflow = ProvisioningWorkflow.from_config(get_config())
        result = workflow.run(site)
    """

    def __init__(
        self,
        config: SiteboxConfig,
        runtime: DockerRuntime,
        records: SiteRecordStore,
        renderer: Optional[ManifestRenderer] = None,
        health: Optional[SiteHealthCheck] = None,
        hosts: Optional[HostsFile] = None,
        certs: Optional[CertificateManager] = None,
    ):
        mock = runtime.mock
        self.config = config
        self.runtime = runtime
        self.records = records
        self.platform = config.resolved_platform()
        self.renderer = renderer or ManifestRenderer()
        self.health = health or SiteHealthCheck(config, mock=mock)
        self.hosts = hosts or HostsFile(config.hosts_file, mock=mock)
        self.certs = certs or CertificateManager(config, mock=mock)
        self.proxy = ProxyNetwork(runtime, config)
        self.volumes = ResourceProvisioner(runtime, platform=self.platform)
        self.database = DatabaseBootstrapper(runtime, config)
        self.files = SiteFiles(self.renderer, config)
        self.rollback_engine = RollbackEngine(
            runtime, self.proxy, self.hosts, self.database, records, certs=self.certs
        )

    @classmethod
    def from_config(cls, config: SiteboxConfig, mock: bool = False) -> "ProvisioningWorkflow":
        runtime = DockerRuntime(mock=mock, timeout=config.command_timeout)
        records = SiteRecordStore(config.records_file, config.lock_file)
        return cls(config, runtime, records)

    def run(self, site: SiteParameters) -> ProvisioningResult:
        """Provision a site.

        Returns:
            ProvisioningResult with the final level and the stored record

        Raises:
            ProvisioningFailed: After any stage failed and rollback ran
        """
        level = Level.INITIAL
        db_result: Optional[DbBootstrapResult] = None

        try:
            with interrupt_guard():
                self._create_root(site)
                level = Level.ROOT_CREATED
                self.files.create_skeleton(site)

                level = Level.NETWORK_JOINED
                self._join_network(site)
                db_result = self._bootstrap_database(site)

                level = Level.CONFIGURED
                self._configure(site)

                if not site.skip_status_check:
                    level = Level.HEALTH_VERIFIED
                    self.health.check(site.site_url)

                self._issue_certificate(site)
        except (Exception, KeyboardInterrupt) as e:
            self._fail(e, level, site, db_result)

        record = SiteRecord.from_site(site)
        try:
            with interrupt_guard():
                self.records.create(record)
        except RecordExistsError as e:
            self._fail(e, level, site, db_result)
        except (RecordWriteError, ProvisioningInterrupted, KeyboardInterrupt) as e:
            # the write may have landed before the failure
            self._fail(e, level, site, db_result, remove_record=True)

        logger.info(f"✓ Site {site.site_url} created")
        return ProvisioningResult(site=site, level=level, record=record, db_result=db_result)

    def _fail(
        self,
        cause: BaseException,
        level: Level,
        site: SiteParameters,
        db_result: Optional[DbBootstrapResult],
        remove_record: bool = False,
    ) -> None:
        logger.error(f"✗ {cause}")
        with shield_signals():
            report: RollbackReport = self.rollback_engine.rollback(
                level,
                site.site_url,
                site.site_fs_path,
                db_credentials=site.database,
                db_result=db_result,
                remove_record=remove_record,
            )
        raise ProvisioningFailed(cause, int(level), report) from cause

    def _create_root(self, site: SiteParameters) -> None:
        root = site.site_fs_path
        root.parent.mkdir(parents=True, exist_ok=True)
        try:
            root.mkdir(exist_ok=False)
        except FileExistsError as e:
            raise ProvisioningError(f"Site root {root} already exists.") from e
        logger.info(f"Creating site {site.site_url} in {root}")

    def _join_network(self, site: SiteParameters) -> None:
        self.proxy.ensure_global_services(site)
        self.proxy.register_site(site.site_url)

    def _bootstrap_database(self, site: SiteParameters) -> DbBootstrapResult:
        creds = site.database
        if creds is None:
            return DbBootstrapResult()
        if creds.mode == DbMode.SHARED:
            return self.database.create_shared_database(creds)
        if creds.mode == DbMode.REMOTE and not site.skip_db_check:
            return self.database.ensure_database(creds, force=site.force)
        return DbBootstrapResult()

    def _configure(self, site: SiteParameters) -> None:
        root = site.site_fs_path
        project = site.site_prefix
        darwin = self.platform == PLATFORM_DARWIN

        self.volumes.ensure_volumes(site.site_url, build_volumes(site))
        self.files.write_manifest(site, nohttps=True)
        self.files.write_env(site)

        # First start populates the named volumes from the images.
        if not darwin:
            self.runtime.compose_up(root, project, ["nginx", "postfix"])

        self.files.write_config_files(site)
        if darwin:
            self.runtime.compose_up(root, project, ["nginx", "php", "postfix"])
        else:
            self.runtime.compose_restart(root, project, ["nginx", "php"])

        self.files.write_index(site)
        self.runtime.compose_exec(root, project, "php", ["chown", "-R", "www-data:", "/var/www/"], user="root")

        if site.ssl_mode in (SSLMode.NONE, SSLMode.SELF):
            self.hosts.add(site.site_url)

    def _issue_certificate(self, site: SiteParameters) -> None:
        if not site.is_ssl:
            return
        self.certs.issue(site)
        self.files.write_manifest(site, nohttps=False)
        self.runtime.compose_up(site.site_fs_path, site.site_prefix, ["nginx"])
