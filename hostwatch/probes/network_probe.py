"""
Network Probe - ICMP reachability and DNS resolution checks.
"""

import logging
import socket
import threading
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Optional

from ..constants import Timeouts
from ..remediation import RemediationExecutor

logger = logging.getLogger(__name__)


class NetworkProbe:
    """
    ``ping`` is delegated to the system binary (no raw sockets needed);
    DNS goes through the system resolver on a worker thread so the lookup
    can be abandoned after ``timeout``. At most one lookup is in flight; while
    an abandoned one is still hung in the resolver, new checks fail at once
    instead of queueing behind it.
    """

    def __init__(self, executor: Optional[RemediationExecutor] = None):
        self.executor = executor if executor is not None else RemediationExecutor()
        self._resolver_pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dns-resolver")
        self._pending: Optional[Future] = None
        self._lock = threading.Lock()

    def ping(self, host: str, timeout: float = Timeouts.PING) -> bool:
        wait = str(max(int(timeout), 1))
        result = self.executor.run("ping", ["-c", "1", "-W", wait, host], timeout=timeout + 1)
        if not result.ok:
            logger.debug(f"Ping {host} failed: {result.error}")
        return result.ok

    def resolve_dns(self, host: str, timeout: float = Timeouts.DNS_QUERY) -> bool:
        with self._lock:
            if self._pending is not None and not self._pending.done():
                logger.debug(f"DNS lookup for {host} skipped, previous lookup still running")
                return False
            future = self._resolver_pool.submit(socket.getaddrinfo, host, None)
            self._pending = future
        try:
            return bool(future.result(timeout=timeout))
        except FutureTimeout:
            logger.debug(f"DNS lookup for {host} timed out after {timeout}s")
            return False
        except (socket.gaierror, OSError, UnicodeError) as e:
            logger.debug(f"DNS lookup for {host} failed: {e}")
            return False

    def close(self):
        self._resolver_pool.shutdown(wait=False)
