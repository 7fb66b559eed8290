"""Database bootstrap for shared and remote database hosts.

A local database (the site's own ``db`` service) is initialised by its
container from the .env file and needs nothing here. For the shared server a
database and user are created inside the global container. A remote server
is reached through a disposable probe container running the MariaDB client,
since the host may have no client installed at all.
"""
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional

from sitebox.core.config import SiteboxConfig
from sitebox.core.errors import (
    DbConnectionFailed,
    DbCreateFailed,
    DbNotEmpty,
    DbStatementError,
    RuntimeCommandError,
)
from sitebox.core.logger import get_logger
from sitebox.core.params import DatabaseCredentials, DbMode, random_password
from sitebox.services.docker import DockerRuntime

logger = get_logger(__name__)

LOOPBACK_HOSTS = ("localhost", "127.0.0.1")
PROBE_PREFIX = "sitebox-dbprobe-"


def quote_identifier(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


def quote_string(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def like_pattern(value: str) -> str:
    """Escape LIKE wildcards so a name matches only itself."""
    return value.replace("\\", "\\\\").replace("_", "\\_").replace("%", "\\%")


@dataclass(frozen=True)
class DbBootstrapResult:
    """What a bootstrap created, so rollback removes exactly that."""
    created_database: bool = False
    created_user: bool = False
    reset: bool = False


class MySQLClient:
    """Runs the mysql client inside a container against one server."""

    def __init__(
        self,
        runtime: DockerRuntime,
        container: str,
        host: str,
        port: str,
        user: str,
        password: str,
    ):
        self.runtime = runtime
        self.container = container
        self.host = host
        self.port = str(port)
        self.user = user
        self.password = password

    def _command(self, sql: str, database: Optional[str] = None) -> List[str]:
        cmd = [
            "mysql",
            f"--host={self.host}",
            f"--port={self.port}",
            f"--user={self.user}",
            f"--password={self.password}",
            "--batch",
            "--skip-column-names",
        ]
        if database:
            cmd.append(f"--database={database}")
        cmd += ["--execute", sql]
        return cmd

    def connect(self) -> None:
        """Check that the server accepts the credentials.

        Raises:
            DbConnectionFailed: If the client cannot connect
        """
        result = self.runtime.exec(self.container, self._command("SELECT 1;"), check=False)
        if result.returncode != 0:
            raise DbConnectionFailed(
                f"Unable to connect to database at {self.host}:{self.port} "
                f"as {self.user}: {(result.stderr or '').strip()}"
            )

    def execute(self, sql: str, database: Optional[str] = None) -> List[str]:
        """Run statements and return the output rows.

        Raises:
            DbStatementError: If the statement fails
        """
        result = self.runtime.exec(self.container, self._command(sql, database), check=False)
        if result.returncode != 0:
            raise DbStatementError(
                f"Statement failed on {self.host}:{self.port}: {(result.stderr or '').strip()}"
            )
        return [line for line in (result.stdout or "").splitlines() if line.strip()]

    def database_exists(self, name: str) -> bool:
        rows = self.execute(f"SHOW DATABASES LIKE {quote_string(like_pattern(name))};")
        return name in rows

    def list_tables(self, name: str) -> List[str]:
        return self.execute("SHOW TABLES;", database=name)

    def create_database(self, name: str) -> None:
        self.execute(f"CREATE DATABASE {quote_identifier(name)};")

    def drop_database(self, name: str) -> None:
        self.execute(f"DROP DATABASE IF EXISTS {quote_identifier(name)};")

    def create_user(self, user: str, password: str, database: str) -> None:
        account = f"{quote_string(user)}@'%'"
        self.execute(
            f"CREATE USER {account} IDENTIFIED BY {quote_string(password)}; "
            f"GRANT ALL PRIVILEGES ON {quote_identifier(database)}.* TO {account}; "
            f"FLUSH PRIVILEGES;"
        )

    def drop_user(self, user: str) -> None:
        self.execute(f"DROP USER IF EXISTS {quote_string(user)}@'%';")


class DatabaseBootstrapper:
    """Makes sure a site's database is reachable and ready to use."""

    def __init__(self, runtime: DockerRuntime, config: SiteboxConfig):
        self.runtime = runtime
        self.config = config

    @contextmanager
    def probe(self) -> Iterator[str]:
        """Run a throwaway MariaDB container; always removed on exit."""
        name = f"{PROBE_PREFIX}{random_password(10).lower()}"
        try:
            self.runtime.run_container(
                name,
                self.config.images["mariadb"],
                env={"MYSQL_ROOT_PASSWORD": random_password()},
            )
            logger.debug(f"Started database probe container {name}")
            yield name
        finally:
            try:
                self.runtime.remove_container(name)
            except RuntimeCommandError as e:
                logger.warning(f"Could not remove probe container {name}: {e}")

    def _gateway_host(self, container: str, host: str) -> str:
        """Loopback on the host is the probe's default gateway from inside it."""
        if host not in LOOPBACK_HOSTS:
            return host
        result = self.runtime.exec(
            container, ["sh", "-c", "ip route show default | cut -d' ' -f3"], check=False
        )
        if result.returncode != 0:
            raise DbConnectionFailed(
                "There was a problem resolving the host address from the probe container."
            )
        return result.stdout.strip() or host

    def ensure_database(self, credentials: DatabaseCredentials, force: bool = False) -> DbBootstrapResult:
        """Verify a remote database and create or reset it as needed.

        Args:
            credentials: Resolved database settings of the site
            force: Reset an existing database that already holds tables

        Returns:
            DbBootstrapResult describing what was created

        Raises:
            DbConnectionFailed: The server rejected the connection
            DbCreateFailed: The database could not be created
            DbNotEmpty: The database holds tables and force is off
        """
        if credentials.mode in (DbMode.LOCAL, DbMode.SHARED):
            return DbBootstrapResult()

        with self.probe() as container:
            host = self._gateway_host(container, credentials.host)
            client = MySQLClient(
                self.runtime, container, host, credentials.port, credentials.user, credentials.password
            )
            logger.info("Verifying connection to remote database")
            client.connect()
            logger.info("✓ Connection to remote database verified")

            name = credentials.name
            if not client.database_exists(name):
                logger.info(f"Database `{name}` does not exist. Attempting to create it.")
                try:
                    client.create_database(name)
                except DbStatementError as e:
                    raise DbCreateFailed(
                        f"Could not create database `{name}` on `{credentials.host}:{credentials.port}`. "
                        f"Please check if {credentials.user} has rights to create database or manually "
                        f"create a database and pass with `--dbname` parameter."
                    ) from e
                return DbBootstrapResult(created_database=True)

            if not client.list_tables(name):
                return DbBootstrapResult()

            if not force:
                raise DbNotEmpty(
                    f"Some database tables seem to exist in database {name}. Please backup and reset "
                    f"the database or use `--force` in the site create command to reset it."
                )

            logger.warning(f"Resetting database `{name}` (--force)")
            client.drop_database(name)
            try:
                client.create_database(name)
            except DbStatementError as e:
                raise DbCreateFailed(f"Could not recreate database `{name}` after reset: {e}") from e
            return DbBootstrapResult(reset=True)

    def _shared_client(self) -> MySQLClient:
        return MySQLClient(
            self.runtime,
            self.config.global_db_container,
            "127.0.0.1",
            "3306",
            "root",
            self.config.global_db_root_password,
        )

    def create_shared_database(self, credentials: DatabaseCredentials) -> DbBootstrapResult:
        """Create the site's database and user on the shared server."""
        client = self._shared_client()
        client.connect()
        if client.database_exists(credentials.name):
            raise DbCreateFailed(
                f"Database `{credentials.name}` already exists on the shared server. "
                f"Pass a different name with `--dbname`."
            )
        try:
            client.create_database(credentials.name)
        except DbStatementError as e:
            raise DbCreateFailed(f"Could not create database `{credentials.name}`: {e}") from e
        try:
            client.create_user(credentials.user, credentials.password, credentials.name)
        except DbStatementError as e:
            try:
                client.drop_database(credentials.name)
            except DbStatementError as drop_error:
                logger.warning(f"Could not drop database `{credentials.name}`: {drop_error}")
            raise DbCreateFailed(
                f"Could not create user {credentials.user}. Please check logs."
            ) from e
        logger.info(f"✓ Created database `{credentials.name}` on the shared server")
        return DbBootstrapResult(created_database=True, created_user=True)

    def drop_created(self, credentials: DatabaseCredentials, result: DbBootstrapResult) -> None:
        """Remove what ``result`` says was created. A reset database is left alone."""
        if not (result.created_database or result.created_user):
            return
        if credentials.mode == DbMode.SHARED:
            self._drop_with(self._shared_client(), credentials, result)
            return
        with self.probe() as container:
            host = self._gateway_host(container, credentials.host)
            client = MySQLClient(
                self.runtime, container, host, credentials.port, credentials.user, credentials.password
            )
            self._drop_with(client, credentials, result)

    @staticmethod
    def _drop_with(client: MySQLClient, credentials: DatabaseCredentials, result: DbBootstrapResult) -> None:
        if result.created_user:
            client.drop_user(credentials.user)
        if result.created_database:
            client.drop_database(credentials.name)
        logger.info(f"Removed database artifacts of `{credentials.name}`")
