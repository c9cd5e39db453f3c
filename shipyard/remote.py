"""
Remote command execution over SSH.

Commands are sent as one bash script (``set -e``) so a failing command stops
the sequence, and stdout/stderr are returned combined.
"""

import io
import logging
import socket
from typing import List, Optional

import paramiko
from paramiko import SSHClient, AutoAddPolicy

from shipyard.utils.crypto import secret_box

logger = logging.getLogger(__name__)


class RemoteExecutionError(Exception):
    """Base class for remote execution failures."""
    pass


class RemoteConnectionError(RemoteExecutionError):
    """Raised when the SSH transport cannot be established or breaks."""
    pass


class RemoteProcessError(RemoteExecutionError):
    """Raised when the remote command sequence exits non-zero."""

    def __init__(self, exit_code: int, output: str):
        self.exit_code = exit_code
        self.output = output
        super().__init__(output.strip() or f"Command exited with code {exit_code}")


def _load_private_key(private_key: str) -> paramiko.PKey:
    """Parse an OpenSSH private key, trying the key types paramiko supports."""
    for key_class in (paramiko.Ed25519Key, paramiko.ECDSAKey, paramiko.RSAKey):
        try:
            return key_class.from_private_key(io.StringIO(private_key))
        except paramiko.SSHException:
            continue
    raise RemoteConnectionError("Unsupported or invalid SSH private key")


class RemoteExecutor:
    """
    Runs command sequences on a Server over SSH.

    A new connection is opened per call and always closed afterwards.
    """

    def __init__(self, connect_timeout: int = 30, command_timeout: Optional[int] = 3600):
        """
        Args:
            connect_timeout: Seconds to wait for the SSH handshake
            command_timeout: Seconds to wait for output before giving up (None = no limit)
        """
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout

    @classmethod
    def from_config(cls, config):
        return cls(
            connect_timeout=config.get('SSH_CONNECT_TIMEOUT', 30),
            command_timeout=config.get('SSH_COMMAND_TIMEOUT', 3600)
        )

    def _connect(self, server) -> SSHClient:
        client = SSHClient()
        client.set_missing_host_key_policy(AutoAddPolicy())

        connect_kwargs = {
            'hostname': server.ip,
            'port': server.port or 22,
            'username': server.user or 'root',
            'timeout': self.connect_timeout
        }

        if server.private_key_encrypted:
            connect_kwargs['pkey'] = _load_private_key(secret_box.decrypt(server.private_key_encrypted))

        try:
            client.connect(**connect_kwargs)
        except paramiko.AuthenticationException as e:
            client.close()
            raise RemoteConnectionError(f"SSH authentication failed for {server.ip}: {e}")
        except (paramiko.SSHException, socket.error) as e:
            client.close()
            raise RemoteConnectionError(f"Failed to connect to {server.ip}: {e}")

        return client

    def execute(self, commands: List[str], server) -> str:
        """
        Execute commands in order on the server.

        Args:
            commands: Shell commands, run in one script
            server: Server model (ip, port, user, private_key_encrypted)

        Returns:
            Combined stdout and stderr

        Raises:
            RemoteConnectionError: If the connection fails
            RemoteProcessError: If the script exits non-zero
        """
        script = '\n'.join(['set -e'] + list(commands))
        logger.debug(f"Running {len(commands)} command(s) on {server.ip}")

        client = self._connect(server)
        try:
            transport = client.get_transport()
            channel = transport.open_session()
            channel.settimeout(self.command_timeout)
            channel.set_combine_stderr(True)
            channel.exec_command('bash -se')
            channel.sendall(script.encode())
            channel.shutdown_write()

            chunks = []
            while True:
                data = channel.recv(32768)
                if not data:
                    break
                chunks.append(data)

            exit_code = channel.recv_exit_status()
            output = b''.join(chunks).decode('utf-8', errors='replace')
        except socket.timeout:
            raise RemoteConnectionError(f"Command timed out on {server.ip} after {self.command_timeout}s")
        except paramiko.SSHException as e:
            raise RemoteConnectionError(f"SSH session failed on {server.ip}: {e}")
        finally:
            client.close()

        if exit_code != 0:
            raise RemoteProcessError(exit_code, output)

        return output


def instant_remote_process(commands: List[str], server, executor: Optional[RemoteExecutor] = None) -> str:
    """Run commands on a server with the default executor settings."""
    if executor is None:
        from flask import current_app
        executor = RemoteExecutor.from_config(current_app.config)
    return executor.execute(commands, server)
