"""Docker and docker compose command boundary.

Every call goes through ``DockerRuntime._run`` which applies the configured
timeout and turns failures into RuntimeCommandError. In mock mode nothing is
executed; queries answer as if the global services were up and no site
resources existed yet.
"""
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from sitebox.core.errors import RuntimeCommandError
from sitebox.core.logger import get_logger

logger = get_logger(__name__)

COMPOSE_PROJECT_LABEL = "com.docker.compose.project"
SITE_URL_LABEL = "org.label-schema.url"


class DockerRuntime:
    """Thin wrapper around the docker CLI."""

    def __init__(self, mock: bool = False, timeout: int = 300, docker_bin: str = "docker"):
        """Initialize runtime.

        Args:
            mock: If True, log the commands instead of running them
            timeout: Upper bound in seconds for every command
            docker_bin: docker executable
        """
        self.mock = mock
        self.timeout = timeout
        self.docker_bin = docker_bin

    def _run(
        self,
        args: Sequence[str],
        check: bool = True,
        input_text: Optional[str] = None,
        cwd: Optional[Path] = None,
    ) -> subprocess.CompletedProcess:
        cmd = [self.docker_bin] + [str(a) for a in args]
        if self.mock:
            logger.info(f"MOCK: Would run {' '.join(cmd)}")
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                input=input_text,
                cwd=str(cwd) if cwd else None,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise RuntimeCommandError(
                f"Command timed out after {self.timeout}s: {' '.join(cmd)}", command=cmd
            ) from e
        except FileNotFoundError as e:
            raise RuntimeCommandError(f"{self.docker_bin} not found in PATH", command=cmd) from e

        if check and result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise RuntimeCommandError(
                f"Command failed ({result.returncode}): {' '.join(cmd)}: {stderr}",
                command=cmd,
                stderr=stderr,
            )
        return result

    def _succeeds(self, args: Sequence[str]) -> bool:
        return self._run(args, check=False).returncode == 0

    @staticmethod
    def _lines(result: subprocess.CompletedProcess) -> List[str]:
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    # Containers

    def container_exists(self, name: str) -> bool:
        if self.mock:
            return True
        return self._succeeds(["container", "inspect", "--format", "{{.Name}}", name])

    def container_running(self, name: str) -> bool:
        if self.mock:
            return True
        result = self._run(
            ["container", "inspect", "--format", "{{.State.Running}}", name], check=False
        )
        return result.returncode == 0 and result.stdout.strip() == "true"

    def start_container(self, name: str) -> None:
        self._run(["start", name])
        logger.info(f"✓ Started container {name}")

    def run_container(
        self,
        name: str,
        image: str,
        env: Optional[Dict[str, str]] = None,
        network: Optional[str] = None,
        labels: Optional[Dict[str, str]] = None,
    ) -> None:
        """Start a detached container."""
        args = ["run", "--detach", "--name", name]
        for key, value in (env or {}).items():
            args += ["--env", f"{key}={value}"]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        if network:
            args += ["--network", network]
        args.append(image)
        self._run(args)

    def remove_container(self, name: str) -> None:
        self._run(["rm", "--force", "--volumes", name])

    def exec(
        self,
        container: str,
        command: Sequence[str],
        user: Optional[str] = None,
        check: bool = True,
        input_text: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        args = ["exec"]
        if input_text is not None:
            args.append("--interactive")
        if user:
            args += ["--user", user]
        args.append(container)
        args += list(command)
        return self._run(args, check=check, input_text=input_text)

    def list_containers(self, label: str) -> List[str]:
        """Names of all containers (running or not) carrying ``label``."""
        result = self._run(
            ["ps", "--all", "--filter", f"label={label}", "--format", "{{.Names}}"]
        )
        return self._lines(result)

    # Volumes

    def volume_exists(self, name: str) -> bool:
        if self.mock:
            return False
        return self._succeeds(["volume", "inspect", name])

    def create_volume(self, name: str, labels: Optional[Dict[str, str]] = None) -> None:
        args = ["volume", "create"]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        args.append(name)
        self._run(args)

    def volume_mountpoint(self, name: str) -> str:
        if self.mock:
            return f"/var/lib/docker/volumes/{name}/_data"
        result = self._run(["volume", "inspect", "--format", "{{.Mountpoint}}", name])
        return result.stdout.strip()

    def list_volumes(self, label: str) -> List[str]:
        return self._lines(self._run(["volume", "ls", "--quiet", "--filter", f"label={label}"]))

    def remove_volume(self, name: str) -> None:
        self._run(["volume", "rm", "--force", name])

    # Networks

    def network_exists(self, name: str) -> bool:
        if self.mock:
            return False
        return self._succeeds(["network", "inspect", name])

    def create_network(self, name: str, labels: Optional[Dict[str, str]] = None) -> None:
        args = ["network", "create"]
        for key, value in (labels or {}).items():
            args += ["--label", f"{key}={value}"]
        args.append(name)
        self._run(args)

    def remove_network(self, name: str) -> None:
        self._run(["network", "rm", name])

    def connect_network(self, network: str, container: str) -> None:
        result = self._run(["network", "connect", network, container], check=False)
        if result.returncode != 0 and "already exists" not in (result.stderr or ""):
            raise RuntimeCommandError(
                f"Unable to connect {container} to network {network}: {result.stderr.strip()}",
                command=result.args,
                stderr=result.stderr,
            )

    def disconnect_network(self, network: str, container: str) -> None:
        self._run(["network", "disconnect", "--force", network, container])

    # Compose

    def compose(self, project_dir: Path, project: str, args: Sequence[str]) -> subprocess.CompletedProcess:
        return self._run(
            ["compose", "--project-name", project, "--project-directory", str(project_dir)] + list(args),
            cwd=project_dir,
        )

    def compose_up(self, project_dir: Path, project: str, services: Optional[Sequence[str]] = None) -> None:
        self.compose(project_dir, project, ["up", "--detach"] + list(services or []))
        logger.info(f"✓ Started services for {project}")

    def compose_restart(self, project_dir: Path, project: str, services: Optional[Sequence[str]] = None) -> None:
        self.compose(project_dir, project, ["restart"] + list(services or []))

    def compose_exec(
        self,
        project_dir: Path,
        project: str,
        service: str,
        command: Sequence[str],
        user: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        args = ["exec", "-T"]
        if user:
            args += ["--user", user]
        args.append(service)
        return self.compose(project_dir, project, args + list(command))
