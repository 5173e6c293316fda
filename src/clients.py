"""
Transport clients: SSH command execution and the Kubernetes package repository.
"""

import logging
import socket
import time
from typing import Dict, Optional, Tuple

import paramiko
import requests

from commands import repository_url
from exceptions import ConnectivityError

logger = logging.getLogger(__name__)


class SSHTransport:
    """Runs commands on remote hosts over SSH, one cached connection per host."""

    READ_CHUNK_SIZE = 32768

    def __init__(
        self,
        username: str,
        key_filename: Optional[str] = None,
        port: int = 22,
        connect_timeout: int = 30,
        max_retries: int = 2,
        base_delay: float = 2.0,
    ):
        """
        Initialize the SSH transport.

        Args:
            username: SSH user for every host
            key_filename: Private key path (None to use the agent / default keys)
            port: SSH port
            connect_timeout: Connection establishment timeout (seconds)
            max_retries: Retries for failed connection attempts
            base_delay: Base delay for exponential backoff between attempts
        """
        self.username = username
        self.key_filename = key_filename
        self.port = port
        self.connect_timeout = connect_timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._clients: Dict[str, paramiko.SSHClient] = {}

    def _open(self, host: str) -> paramiko.SSHClient:
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        client.connect(
            hostname=host,
            port=self.port,
            username=self.username,
            key_filename=self.key_filename,
            timeout=self.connect_timeout,
            banner_timeout=self.connect_timeout,
            auth_timeout=self.connect_timeout,
        )
        return client

    def _connect(self, host: str) -> paramiko.SSHClient:
        """
        Return a live connection to host, opening one with retries if needed.

        Raises:
            ConnectivityError: If the host cannot be reached
        """
        client = self._clients.get(host)
        if client is not None:
            transport = client.get_transport()
            if transport is not None and transport.is_active():
                return client
            client.close()
            del self._clients[host]

        last_error = None
        for attempt in range(self.max_retries + 1):
            try:
                client = self._open(host)
                self._clients[host] = client
                return client
            except paramiko.AuthenticationException as e:
                # retrying will not fix credentials
                raise ConnectivityError(host, f"authentication failed: {e}") from e
            except (paramiko.SSHException, socket.error) as e:
                last_error = e
                if attempt < self.max_retries:
                    delay = self.base_delay * (2**attempt)
                    logger.warning(
                        f"SSH connection to {host} failed: {e}, attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
                    )
                    time.sleep(delay)

        raise ConnectivityError(host, f"SSH connection failed: {last_error}")

    def run(self, host: str, command: str, timeout: int) -> Tuple[int, str, str]:
        """
        Run a command on host.

        Args:
            host: Host address
            command: Command line to execute
            timeout: Per-command timeout (seconds)

        Returns:
            Tuple of (exit_code, stdout, stderr)

        Raises:
            ConnectivityError: If the connection fails or the command times out
        """
        client = self._connect(host)
        try:
            _, stdout, _ = client.exec_command(command, timeout=timeout)
            channel = stdout.channel
            deadline = time.monotonic() + timeout
            out_chunks = []
            err_chunks = []
            # the remote command stalls once the channel window is full
            while True:
                while channel.recv_ready():
                    out_chunks.append(channel.recv(self.READ_CHUNK_SIZE))
                while channel.recv_stderr_ready():
                    err_chunks.append(channel.recv_stderr(self.READ_CHUNK_SIZE))
                if (
                    channel.exit_status_ready()
                    and not channel.recv_ready()
                    and not channel.recv_stderr_ready()
                ):
                    break
                if time.monotonic() > deadline:
                    channel.close()
                    raise ConnectivityError(
                        host, f"command timed out after {timeout}s"
                    )
                time.sleep(0.2)
            exit_code = channel.recv_exit_status()
            out = b"".join(out_chunks).decode("utf-8", "replace")
            err = b"".join(err_chunks).decode("utf-8", "replace")
            return exit_code, out, err
        except (paramiko.SSHException, socket.error) as e:
            self._clients.pop(host, None)
            raise ConnectivityError(host, f"command execution failed: {e}") from e

    def close(self) -> None:
        """Close every cached connection."""
        for client in self._clients.values():
            client.close()
        self._clients.clear()


class PackageRepositoryClient:
    """HTTP client for the pkgs.k8s.io package repository."""

    RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

    def __init__(
        self,
        timeout_s: int = 15,
        max_retries: int = 3,
        base_delay: float = 2.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the repository client.

        Args:
            timeout_s: Request timeout in seconds
            max_retries: Maximum number of retries for transient errors
            base_delay: Base delay for exponential backoff
            session: Optional preconfigured requests session
        """
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.session = session or requests.Session()

    def _calculate_delay(self, attempt: int, resp=None) -> float:
        """
        Calculate delay with exponential backoff.

        Args:
            attempt: Current attempt number
            resp: Optional response object (to check Retry-After header)

        Returns:
            Delay in seconds
        """
        if resp is not None and "Retry-After" in resp.headers:
            try:
                return float(resp.headers["Retry-After"])
            except ValueError:
                pass
        return min(self.base_delay * (2**attempt), 60.0)

    def _head_with_retry(self, url: str) -> requests.Response:
        """
        Send a HEAD request, retrying transient errors.

        Raises:
            RuntimeError: If max retries exceeded
        """
        last_error = None

        for attempt in range(self.max_retries + 1):
            resp = None
            try:
                resp = self.session.head(
                    url, timeout=self.timeout_s, allow_redirects=True
                )
            except requests.RequestException as e:
                last_error = str(e)
            else:
                if resp.status_code not in self.RETRYABLE_STATUS_CODES:
                    return resp
                last_error = f"HTTP {resp.status_code}"

            if attempt < self.max_retries:
                delay = self._calculate_delay(attempt, resp)
                logger.warning(
                    f"Repository check error ({last_error}), attempt {attempt + 1}/{self.max_retries + 1}, waiting {delay:.1f}s..."
                )
                time.sleep(delay)

        raise RuntimeError(f"Max retries exceeded. Last error: {last_error}")

    def repository_exists(self, minor_version: str) -> bool:
        """
        Check whether the repository for a Kubernetes minor version exists.

        Args:
            minor_version: Major.minor, e.g. '1.33'

        Returns:
            True if the repository answers 200, False on 403/404

        Raises:
            RuntimeError: If the repository server cannot be reached
        """
        url = repository_url(minor_version)
        resp = self._head_with_retry(url)
        if resp.status_code == 200:
            logger.info(f"✓ Repository exists: {url}")
            return True
        if resp.status_code in (403, 404):
            logger.error(f"Repository does not exist: {url}")
            return False
        raise RuntimeError(
            f"Unexpected repository response ({resp.status_code}) for {url}"
        )
