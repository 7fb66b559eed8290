"""Shared test fixtures for sitebox tests."""
import logging
import re
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from sitebox.core.config import SiteboxConfig, set_config
from sitebox.core.logger import RunLogHandler, run_log
from sitebox.core.record_store import SiteRecordStore
from sitebox.core.validator import SiteRequest, SiteValidator
from sitebox.core.workflow import ProvisioningWorkflow
from sitebox.services.database import PROBE_PREFIX
from sitebox.services.docker import COMPOSE_PROJECT_LABEL, DockerRuntime


class FakeMySQLServer:
    """In-memory MariaDB understanding the statements MySQLClient sends."""

    def __init__(self, users: Optional[Dict[str, str]] = None, allow_create: bool = True):
        self.users = dict(users or {})
        self.databases: Dict[str, List[str]] = {}
        self.allow_create = allow_create
        self.statements: List[str] = []

    def handle(self, user: str, password: str, sql: str, database: Optional[str]):
        if self.users.get(user) != password:
            return 1, "", f"ERROR 1045 (28000): Access denied for user '{user}'"
        output = []
        for statement in (s.strip() for s in sql.split(";")):
            if not statement:
                continue
            self.statements.append(statement)
            rc, rows, error = self._statement(statement, database)
            if rc:
                return rc, "", error
            output += rows
        return 0, "".join(f"{row}\n" for row in output), ""

    def _statement(self, statement: str, database: Optional[str]):
        if statement == "SELECT 1":
            return 0, ["1"], ""
        match = re.match(r"SHOW DATABASES LIKE '(.*)'$", statement)
        if match:
            literal = re.sub(r"\\(.)", r"\1", match.group(1))
            name = re.sub(r"\\(.)", r"\1", literal)
            return 0, [name] if name in self.databases else [], ""
        if statement == "SHOW TABLES":
            if database not in self.databases:
                return 1, [], f"ERROR 1049 (42000): Unknown database '{database}'"
            return 0, list(self.databases[database]), ""
        match = re.match(r"CREATE DATABASE `(.*)`$", statement)
        if match:
            name = match.group(1)
            if not self.allow_create:
                return 1, [], "ERROR 1044 (42000): Access denied to create database"
            if name in self.databases:
                return 1, [], f"ERROR 1007 (HY000): Can't create database '{name}'; database exists"
            self.databases[name] = []
            return 0, [], ""
        match = re.match(r"DROP DATABASE IF EXISTS `(.*)`$", statement)
        if match:
            self.databases.pop(match.group(1), None)
            return 0, [], ""
        match = re.match(r"CREATE USER '(.*)'@'%' IDENTIFIED BY '(.*)'$", statement)
        if match:
            self.users[match.group(1)] = match.group(2)
            return 0, [], ""
        match = re.match(r"DROP USER IF EXISTS '(.*)'@'%'$", statement)
        if match:
            self.users.pop(match.group(1), None)
            return 0, [], ""
        if statement.startswith("GRANT ") or statement == "FLUSH PRIVILEGES":
            return 0, [], ""
        return 1, [], f"ERROR 1064 (42000): unsupported statement {statement}"


class FakeDocker(DockerRuntime):
    """In-memory docker runtime.

    Volumes are real directories under ``volume_root`` so that files written
    through the site's symlinks land somewhere the tests can inspect.
    """

    def __init__(self, volume_root: Path):
        super().__init__(mock=False, timeout=5)
        self.volume_root = Path(volume_root)
        self.containers: Dict[str, dict] = {}
        self.volumes: Dict[str, dict] = {}
        self.networks: Dict[str, dict] = {}
        self.mysql_servers: Dict[str, FakeMySQLServer] = {}
        self.gateway = "172.17.0.1"
        self.probes_started: List[str] = []
        self.compose_calls: List[tuple] = []
        self.failures: Dict[str, Exception] = {}

    def _run(self, args, check=True, input_text=None, cwd=None):
        raise AssertionError(f"Unexpected docker command: {args}")

    def _maybe_fail(self, operation: str):
        if operation in self.failures:
            raise self.failures[operation]

    @staticmethod
    def _completed(cmd, rc=0, stdout="", stderr=""):
        return subprocess.CompletedProcess(cmd, rc, stdout=stdout, stderr=stderr)

    @staticmethod
    def _matches(labels: dict, label: str) -> bool:
        key, _, value = label.partition("=")
        return labels.get(key) == value

    def add_container(self, name: str, running: bool = True, labels: Optional[dict] = None):
        self.containers[name] = {"running": running, "labels": dict(labels or {})}

    def container_exists(self, name):
        return name in self.containers

    def container_running(self, name):
        return self.containers.get(name, {}).get("running", False)

    def start_container(self, name):
        self._maybe_fail("start_container")
        self.containers[name]["running"] = True

    def run_container(self, name, image, env=None, network=None, labels=None):
        self._maybe_fail("run_container")
        if name.startswith(PROBE_PREFIX):
            self.probes_started.append(name)
        self.add_container(name, labels=labels)

    def remove_container(self, name):
        self.containers.pop(name, None)

    def exec(self, container, command, user=None, check=True, input_text=None):
        if container not in self.containers:
            return self._completed(command, 1, stderr=f"No such container: {container}")
        if command[0] == "sh" and "ip route" in command[-1]:
            return self._completed(command, stdout=f"{self.gateway}\n")
        if command[0] == "mysql":
            return self._mysql(command)
        return self._completed(command)

    def _mysql(self, command):
        options = {}
        sql = command[command.index("--execute") + 1]
        for arg in command[1:]:
            if arg.startswith("--") and "=" in arg:
                key, _, value = arg[2:].partition("=")
                options[key] = value
        server = self.mysql_servers.get(options["host"])
        if server is None:
            return self._completed(command, 1, stderr=f"ERROR 2005 (HY000): Unknown MySQL server host '{options['host']}'")
        rc, stdout, stderr = server.handle(options["user"], options["password"], sql, options.get("database"))
        return self._completed(command, rc, stdout, stderr)

    def list_containers(self, label):
        return [name for name, c in self.containers.items() if self._matches(c["labels"], label)]

    def volume_exists(self, name):
        return name in self.volumes

    def create_volume(self, name, labels=None):
        self._maybe_fail("create_volume")
        if name in self.volumes:
            raise AssertionError(f"volume {name} created twice")
        mountpoint = self.volume_root / name
        mountpoint.mkdir(parents=True, exist_ok=True)
        self.volumes[name] = {"labels": dict(labels or {}), "mountpoint": mountpoint}

    def volume_mountpoint(self, name):
        return str(self.volumes[name]["mountpoint"])

    def list_volumes(self, label):
        return [name for name, v in self.volumes.items() if self._matches(v["labels"], label)]

    def remove_volume(self, name):
        volume = self.volumes.pop(name, None)
        if volume:
            shutil.rmtree(volume["mountpoint"], ignore_errors=True)

    def network_exists(self, name):
        return name in self.networks

    def create_network(self, name, labels=None):
        self._maybe_fail("create_network")
        self.networks[name] = {"labels": dict(labels or {}), "members": set()}

    def remove_network(self, name):
        self.networks.pop(name)

    def connect_network(self, network, container):
        self.networks[network]["members"].add(container)

    def disconnect_network(self, network, container):
        self.networks[network]["members"].discard(container)

    def compose(self, project_dir, project, args):
        self.compose_calls.append((project, tuple(args)))
        return self._completed(["compose"] + list(args))

    def compose_up(self, project_dir, project, services=None):
        self._maybe_fail("compose_up")
        self.compose(project_dir, project, ["up", "--detach"] + list(services or []))
        for service in services or []:
            self.add_container(f"{project}_{service}_1", labels={COMPOSE_PROJECT_LABEL: project})

    def compose_restart(self, project_dir, project, services=None):
        self._maybe_fail("compose_restart")
        self.compose(project_dir, project, ["restart"] + list(services or []))
        for service in services or []:
            self.add_container(f"{project}_{service}_1", labels={COMPOSE_PROJECT_LABEL: project})

    def compose_exec(self, project_dir, project, service, command, user=None):
        self._maybe_fail("compose_exec")
        return self.compose(project_dir, project, ["exec", service] + list(command))

    def site_containers(self, project: str) -> List[str]:
        return self.list_containers(f"{COMPOSE_PROJECT_LABEL}={project}")


class FakeHealthCheck:
    """Readiness probe that passes, or raises the given error."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.checked: List[str] = []

    def check(self, site_url):
        self.checked.append(site_url)
        if self.error:
            raise self.error
        return 200


@pytest.fixture(autouse=True)
def reset_global_config():
    """Never leak a configuration between tests."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture(autouse=True)
def detach_run_log():
    """Close run log files opened by a test."""
    yield
    for handler in [h for h in run_log.handlers if isinstance(h, RunLogHandler)]:
        run_log.removeHandler(handler)
        handler.close()
    run_log.setLevel(logging.INFO)


@pytest.fixture
def config(tmp_path):
    """Configuration rooted in a temporary directory."""
    cfg = SiteboxConfig(
        root_dir=tmp_path / "sitebox",
        hosts_file=tmp_path / "hosts",
        status_check_attempts=1,
        status_check_interval=0,
        platform="linux",
        global_db_root_password="rootpw",
    )
    (tmp_path / "hosts").write_text("127.0.0.1\tlocalhost\n")
    return cfg


@pytest.fixture
def docker(tmp_path, config):
    """Fake docker with the global services running."""
    runtime = FakeDocker(tmp_path / "volumes")
    for name in (config.proxy_container, config.global_db_container, config.global_redis_container):
        runtime.add_container(name)
    runtime.mysql_servers["127.0.0.1"] = FakeMySQLServer(users={"root": "rootpw"})
    return runtime


@pytest.fixture
def records(config):
    return SiteRecordStore(config.records_file, config.lock_file)


@pytest.fixture
def health():
    return FakeHealthCheck()


@pytest.fixture
def workflow(config, docker, records, health):
    return ProvisioningWorkflow(config, docker, records, health=health)


@pytest.fixture
def make_site(config, records):
    """Validate create options into SiteParameters."""

    def _make(site_url, **options):
        return SiteValidator(records, config).validate(SiteRequest(site_url=site_url, **options))

    return _make


@pytest.fixture
def remote_db(docker):
    """Remote MariaDB at db.example.net accepting app/secret."""
    server = FakeMySQLServer(users={"app": "secret"})
    docker.mysql_servers["db.example.net"] = server
    return server

