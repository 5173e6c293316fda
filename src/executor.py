"""
Remote command execution with uniform dry-run handling.
"""

import logging

from commands import RemoteCommand, connectivity_check
from exceptions import ConnectivityError
from models import CommandResult

logger = logging.getLogger(__name__)

ELEVATION_PREFIX = "sudo -n "


class RemoteExecutor:
    """Executes single commands against named hosts.

    The transport is anything with ``run(host, command, timeout)`` returning
    ``(exit_code, stdout, stderr)`` and raising ConnectivityError when the host
    cannot be reached. In dry-run mode the transport is never touched and
    every command reports success, with the command that would have run as
    its output.
    """

    def __init__(self, transport, dry_run: bool = False, command_timeout: int = 600):
        self.transport = transport
        self.dry_run = dry_run
        self.command_timeout = command_timeout

    def _full_command(self, command: str, use_elevation: bool) -> str:
        return f"{ELEVATION_PREFIX}{command}" if use_elevation else command

    def _run(
        self,
        host: str,
        command: str,
        description: str,
        use_elevation: bool,
        soft: bool,
        timeout: int = None,
    ) -> CommandResult:
        full_cmd = self._full_command(command, use_elevation)
        logger.info(f"[{host}] {description}")

        if self.dry_run:
            logger.info(f"DRY RUN: Would execute on {host}: {full_cmd}")
            return CommandResult(
                host=host,
                command=full_cmd,
                succeeded=True,
                exit_code=0,
                output=full_cmd,
                dry_run=True,
                soft=soft,
            )

        logger.debug(f"[{host}] $ {full_cmd}")
        try:
            exit_code, out, err = self.transport.run(
                host, full_cmd, timeout or self.command_timeout
            )
        except ConnectivityError as e:
            result = CommandResult(
                host=host, command=full_cmd, succeeded=False, error=str(e), soft=soft
            )
        else:
            result = CommandResult(
                host=host,
                command=full_cmd,
                succeeded=exit_code == 0,
                exit_code=exit_code,
                output=out,
                error=err,
                soft=soft,
            )

        if result.succeeded:
            logger.info(f"✓ {description} completed on {host}")
        elif soft:
            logger.warning(
                f"{description} failed on {host} (non-critical): {result.error_detail}"
            )
        else:
            logger.error(f"{description} failed on {host}: {result.error_detail}")
            logger.error(f"Failed command: {full_cmd}")
        return result

    def execute(
        self,
        host: str,
        command: str,
        description: str,
        use_elevation: bool = True,
        timeout: int = None,
    ) -> CommandResult:
        """
        Execute a command whose failure the caller treats as fatal.

        Args:
            host: Host address
            command: Command line (without sudo)
            description: Human-readable action, used in logs
            use_elevation: Prefix the command with sudo
            timeout: Override of the per-command timeout (seconds)

        Returns:
            CommandResult; never raises for remote failures
        """
        return self._run(host, command, description, use_elevation, False, timeout)

    def execute_soft(
        self,
        host: str,
        command: str,
        description: str,
        use_elevation: bool = True,
        timeout: int = None,
    ) -> CommandResult:
        """Execute a diagnostic command. Failures are logged as warnings only."""
        return self._run(host, command, description, use_elevation, True, timeout)

    def run(self, host: str, cmd: RemoteCommand, timeout: int = None) -> CommandResult:
        """Execute a RemoteCommand on host."""
        return self.execute(host, cmd.command, cmd.description, cmd.elevated, timeout)

    def run_soft(self, host: str, cmd: RemoteCommand) -> CommandResult:
        """Execute a RemoteCommand on host through the soft path."""
        return self.execute_soft(host, cmd.command, cmd.description, cmd.elevated)

    def check_connection(self, host: str) -> bool:
        """
        Test that a host accepts SSH commands.

        Args:
            host: Host address

        Returns:
            True if the check command succeeded
        """
        if self.dry_run:
            logger.info(f"DRY RUN: Would test SSH connection to {host}")
            return True
        check = connectivity_check()
        try:
            exit_code, _, err = self.transport.run(
                host, check.command, self.command_timeout
            )
        except ConnectivityError as e:
            logger.error(f"SSH connection to {host} failed: {e}")
            return False
        if exit_code != 0:
            logger.error(f"SSH connection to {host} failed: {err.strip()}")
            return False
        logger.info(f"✓ SSH connection to {host} successful")
        return True
