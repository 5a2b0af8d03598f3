import os

import docker
from docker.errors import DockerException
from requests.exceptions import RequestException

from dgs.control.errors import ConnectivityError, RuntimeCallError

DEFAULT_TIMEOUT = 5
PODMAN_API_VERSION = "1.40"
PODMAN_SYSTEM_SOCKET = "unix:///var/run/podman/podman.sock"


def podman_user_socket() -> str:
    runtime_dir = os.environ.get("XDG_RUNTIME_DIR")
    if not runtime_dir:
        raise ConnectivityError(
            "There should be a runtime dir ($XDG_RUNTIME_DIR) to find the podman user socket"
        )
    return f"unix://{runtime_dir.rstrip('/')}/podman/podman.sock"


class ContainerRuntime:
    """Narrow wrapper over the Docker Engine API (also served by Podman)."""

    def __init__(self, api: docker.APIClient, on_debug=None):
        self.api = api
        self.on_debug = on_debug

    @classmethod
    def connect(cls, podman_user: bool = False, podman_system: bool = False,
                timeout: int = DEFAULT_TIMEOUT, on_debug=None) -> "ContainerRuntime":
        if podman_user and podman_system:
            raise ValueError("--podman-user and --podman-system are mutually exclusive")
        try:
            if podman_user:
                api = docker.APIClient(
                    base_url=podman_user_socket(), version=PODMAN_API_VERSION, timeout=timeout,
                )
            elif podman_system:
                api = docker.APIClient(
                    base_url=PODMAN_SYSTEM_SOCKET, version=PODMAN_API_VERSION, timeout=timeout,
                )
            else:
                api = docker.from_env(timeout=timeout).api
        except DockerException as e:
            raise ConnectivityError(f"Unable to connect with Docker: {e}") from e
        return cls(api, on_debug=on_debug)

    def _debug(self, message: str) -> None:
        if self.on_debug:
            self.on_debug(message)

    def _call(self, what: str, fn, *args, **kwargs):
        self._debug(f"{what}: args={args} kwargs={kwargs}")
        try:
            return fn(*args, **kwargs)
        except (DockerException, RequestException) as e:
            raise RuntimeCallError(f"{what} failed: {e}") from e

    def ping(self) -> None:
        try:
            self.api.ping()
        except (DockerException, RequestException) as e:
            raise ConnectivityError(f"Unable to connect with Docker: {e}") from e

    def list_containers(self, all: bool = True, filters: dict[str, list[str]] | None = None) -> list[dict]:
        return self._call("list containers", self.api.containers, all=all, filters=filters or {})

    def create_container(self, name: str, image: str, env: list[str],
                         port_bindings: dict[str, int], labels: dict[str, str]) -> str:
        exposed = [tuple(key.split("/", 1)) for key in port_bindings]
        host_config = self.api.create_host_config(port_bindings=port_bindings)
        response = self._call(
            "create container", self.api.create_container,
            image=image, name=name, environment=env, labels=labels,
            ports=[(int(port), proto) for port, proto in exposed],
            host_config=host_config,
        )
        return response["Id"]

    def start_container(self, container_id: str) -> None:
        self._call("start container", self.api.start, container_id)

    def stop_container(self, container_id: str) -> None:
        self._call("stop container", self.api.stop, container_id)

    def remove_container(self, container_id: str) -> None:
        self._call("remove container", self.api.remove_container, container_id)

    def pull_image(self, image: str, tag: str | None = None):
        """Yield decoded progress items of an image pull."""
        stream = self._call("pull image", self.api.pull, image, tag=tag, stream=True, decode=True)
        try:
            yield from stream
        except (DockerException, RequestException) as e:
            raise RuntimeCallError(f"pull image failed: {e}") from e
