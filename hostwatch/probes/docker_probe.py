"""
Docker Probe - container listing, memory sampling and restarts via the Docker SDK.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import docker
from docker.errors import DockerException, NotFound

from ..constants import Timeouts
from ..utils.error_handling import HostwatchError

logger = logging.getLogger(__name__)


class ContainerProbeError(HostwatchError):
    """The Docker daemon could not be queried."""


@dataclass(frozen=True)
class ContainerInfo:
    name: str
    running: bool
    status: str = ""
    image: str = ""
    id: str = ""


def memory_percent_from_stats(stats: Dict[str, Any]) -> Optional[float]:
    """
    Memory usage percentage from a Docker stats payload.

    Page cache is excluded the same way ``docker stats`` does it
    (``inactive_file`` on cgroup v2, ``cache`` on cgroup v1).
    """
    memory = stats.get("memory_stats") or {}
    usage = memory.get("usage")
    limit = memory.get("limit")
    if not usage or not limit:
        return None

    detail = memory.get("stats") or {}
    cache = detail.get("inactive_file", detail.get("total_inactive_file", detail.get("cache", 0))) or 0
    used = max(usage - cache, 0)
    return used / limit * 100.0


class DockerProbe:
    """
    Thin wrapper over a docker.DockerClient.

    The client is created lazily and recreated after a connection failure, so
    a Docker service restart does not leave the probe holding a dead client.
    """

    def __init__(self, client: Optional[docker.DockerClient] = None, timeout: float = Timeouts.CONTAINER_RESTART):
        self._client = client
        self._timeout = timeout
        self._lock = threading.Lock()

    def _get_client(self) -> docker.DockerClient:
        with self._lock:
            if self._client is None:
                try:
                    self._client = docker.from_env(timeout=int(self._timeout))
                except DockerException as e:
                    raise ContainerProbeError(f"cannot connect to Docker: {e}") from e
            return self._client

    def _reset_client(self):
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            try:
                client.close()
            except Exception as e:
                logger.debug(f"Error closing Docker client: {e}")

    def list_containers(self) -> List[ContainerInfo]:
        """
        All containers, running or not.

        Raises:
            ContainerProbeError: the Docker daemon did not answer
        """
        client = self._get_client()
        try:
            containers = client.containers.list(all=True)
        except DockerException as e:
            self._reset_client()
            raise ContainerProbeError(str(e)) from e

        result = []
        for c in containers:
            attrs = getattr(c, "attrs", None) or {}
            image = (attrs.get("Config") or {}).get("Image", "")
            result.append(ContainerInfo(
                name=c.name,
                running=c.status == "running",
                status=c.status,
                image=image,
                id=getattr(c, "short_id", ""),
            ))
        return result

    def memory_percent(self, name: str) -> Optional[float]:
        """Current memory usage of container ``name`` in percent, None if unavailable."""
        try:
            container = self._get_client().containers.get(name)
            stats = container.stats(stream=False, one_shot=True)
        except (DockerException, ContainerProbeError) as e:
            logger.debug(f"Memory stats unavailable for {name}: {e}")
            return None
        return memory_percent_from_stats(stats)

    def restart_container(self, name: str) -> Optional[str]:
        """Restart container ``name``. Returns an error description, or None on success."""
        try:
            container = self._get_client().containers.get(name)
            container.restart()
        except NotFound:
            return f"container {name} not found"
        except DockerException as e:
            return str(e)
        except ContainerProbeError as e:
            return str(e)
        return None

    def close(self):
        self._reset_client()
