import logging
from dataclasses import dataclass
from typing import Callable, Optional

import docker
from docker.errors import DockerException, NotFound

from ..docker_client import get_docker_client
from ..errors import NotFoundError, RuntimeUnavailable
from ..models import ContainerState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NetworkCounters:
    rx_bytes: int
    tx_bytes: int


class ContainerRuntime:
    def __init__(self, client_factory: Optional[Callable[[], docker.DockerClient]] = None) -> None:
        self._client_factory = client_factory or get_docker_client

    def inspect(self, name: str) -> ContainerState:
        container = self._get_container(name)
        state = container.attrs.get("State") or {}
        return ContainerState(
            name=name,
            status=str(state.get("Status") or container.status or "unknown"),
            running=bool(state.get("Running")),
            started_at=state.get("StartedAt"),
        )

    def stats(self, name: str) -> NetworkCounters:
        container = self._get_container(name)
        try:
            stats = container.stats(stream=False)
        except DockerException as exc:
            raise RuntimeUnavailable(f"Failed to read stats for {name}: {exc}") from exc

        networks = stats.get("networks") or {}
        rx_bytes = sum(int(net.get("rx_bytes") or 0) for net in networks.values())
        tx_bytes = sum(int(net.get("tx_bytes") or 0) for net in networks.values())
        return NetworkCounters(rx_bytes=rx_bytes, tx_bytes=tx_bytes)

    def start(self, name: str) -> None:
        container = self._get_container(name)
        try:
            container.start()
        except DockerException as exc:
            raise RuntimeUnavailable(f"Failed to start {name}: {exc}") from exc
        logger.info("Started container %s", name)

    def stop(self, name: str) -> None:
        container = self._get_container(name)
        try:
            container.stop()
        except DockerException as exc:
            raise RuntimeUnavailable(f"Failed to stop {name}: {exc}") from exc
        logger.info("Stopped container %s", name)

    def restart(self, name: str) -> None:
        container = self._get_container(name)
        try:
            container.restart()
        except DockerException as exc:
            raise RuntimeUnavailable(f"Failed to restart {name}: {exc}") from exc
        logger.info("Restarted container %s", name)

    def logs(self, name: str, tail: int = 200) -> str:
        container = self._get_container(name)
        try:
            raw = container.logs(stdout=True, stderr=True, tail=tail, timestamps=True)
        except DockerException as exc:
            raise RuntimeUnavailable(f"Failed to fetch logs for {name}: {exc}") from exc
        text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)
        return "\n".join(line for line in text.splitlines() if line.strip())

    def _get_container(self, name: str):
        try:
            return self._client_factory().containers.get(name)
        except NotFound as exc:
            raise NotFoundError(f"Container not found: {name}") from exc
        except DockerException as exc:
            raise RuntimeUnavailable(f"Docker unavailable: {exc}") from exc
