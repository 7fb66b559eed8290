"""Level-driven cleanup of a failed provisioning run.

Each step is independent: a failing step is logged and reported, and the
remaining steps still run. Nothing here raises, so the original error is
never masked by a cleanup problem.
"""
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from sitebox.core.errors import RollbackError
from sitebox.core.logger import get_logger
from sitebox.core.params import DatabaseCredentials, Level, docker_style_prefix
from sitebox.core.record_store import SiteRecordStore
from sitebox.services.database import DatabaseBootstrapper, DbBootstrapResult
from sitebox.services.docker import COMPOSE_PROJECT_LABEL, SITE_URL_LABEL, DockerRuntime
from sitebox.services.hosts import HostsFile
from sitebox.services.proxy import ProxyNetwork
from sitebox.services.ssl import CertificateManager

logger = get_logger(__name__)


@dataclass
class RollbackStepResult:
    step: str
    level: int
    ok: bool = True
    error: Optional[RollbackError] = None


@dataclass
class RollbackReport:
    """Outcome of every rollback step that ran, in execution order."""
    level: int
    site_url: str
    steps: List[RollbackStepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failed(self) -> List[RollbackStepResult]:
        return [step for step in self.steps if not step.ok]

    @property
    def step_names(self) -> List[str]:
        return [step.step for step in self.steps]


class RollbackEngine:
    """Undoes the side effects of a provisioning run up to a progress level."""

    def __init__(
        self,
        runtime: DockerRuntime,
        proxy: ProxyNetwork,
        hosts: HostsFile,
        database: DatabaseBootstrapper,
        records: SiteRecordStore,
        certs: Optional[CertificateManager] = None,
    ):
        self.runtime = runtime
        self.proxy = proxy
        self.hosts = hosts
        self.database = database
        self.records = records
        self.certs = certs

    def rollback(
        self,
        level: int,
        site_url: str,
        fs_root: Path,
        db_credentials: Optional[DatabaseCredentials] = None,
        db_result: Optional[DbBootstrapResult] = None,
        remove_record: bool = False,
    ) -> RollbackReport:
        """Run the cleanup steps for ``level``, highest stage first.

        Args:
            level: Progress level reached by the failed run
            site_url: Site being provisioned
            fs_root: Site root directory
            db_credentials: Database settings of the site, if any
            db_result: What the database bootstrap created, if it ran
            remove_record: Also delete the site record

        Returns:
            RollbackReport with one entry per step that ran
        """
        report = RollbackReport(level=int(level), site_url=site_url)
        logger.warning(f"Initiating clean-up of {site_url} (level {int(level)})")

        if level >= Level.CONFIGURED:
            self._step(report, "containers", Level.CONFIGURED, lambda: self._remove_containers(site_url))
            self._step(report, "volumes", Level.CONFIGURED, lambda: self._remove_volumes(site_url))
            self._step(report, "hosts entry", Level.CONFIGURED, lambda: self.hosts.remove(site_url))
            if self.certs:
                self._step(report, "certificates", Level.CONFIGURED, lambda: self.certs.remove(site_url))

        if level >= Level.NETWORK_JOINED:
            self._step(report, "network", Level.NETWORK_JOINED, lambda: self.proxy.unregister_site(site_url))
            if db_credentials and db_result:
                self._step(
                    report, "database", Level.NETWORK_JOINED,
                    lambda: self.database.drop_created(db_credentials, db_result),
                )

        if level >= Level.ROOT_CREATED:
            self._step(report, "site root", Level.ROOT_CREATED, lambda: self._remove_root(Path(fs_root)))

        if remove_record:
            self._step(report, "record", int(level), lambda: self.records.delete(site_url))

        if report.ok:
            logger.info(f"✓ Rollback of {site_url} complete")
        else:
            logger.error(f"✗ Rollback of {site_url} left {len(report.failed)} step(s) incomplete")
        return report

    @staticmethod
    def _step(report: RollbackReport, name: str, level: int, action: Callable[[], object]) -> None:
        try:
            action()
        except Exception as e:
            error = RollbackError(name, str(e), level=int(level))
            logger.error(f"✗ Rollback step failed: {error}")
            report.steps.append(RollbackStepResult(name, int(level), ok=False, error=error))
            return
        logger.debug(f"Rollback step done: {name}")
        report.steps.append(RollbackStepResult(name, int(level)))

    def _remove_containers(self, site_url: str) -> None:
        label = f"{COMPOSE_PROJECT_LABEL}={docker_style_prefix(site_url)}"
        for name in self.runtime.list_containers(label):
            self.runtime.remove_container(name)

    def _remove_volumes(self, site_url: str) -> None:
        for name in self.runtime.list_volumes(f"{SITE_URL_LABEL}={site_url}"):
            self.runtime.remove_volume(name)

    @staticmethod
    def _remove_root(fs_root: Path) -> None:
        if fs_root.is_symlink():
            fs_root.unlink()
        elif fs_root.exists():
            shutil.rmtree(fs_root)
