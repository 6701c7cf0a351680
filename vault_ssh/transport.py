"""Remote copy and remote exec over SSH.

Every operation opens its own authenticated session and closes it when done;
no connections are pooled or reused.
"""
import io
import logging
import time
from contextlib import contextmanager
from typing import Iterator, NamedTuple, Tuple

import paramiko

from .errors import RemoteCopyError, RemoteExecError
from .settings import settings

logger = logging.getLogger("vault_ssh.transport")

_KEY_CLASSES = (paramiko.RSAKey, paramiko.Ed25519Key, paramiko.ECDSAKey)
_READ_CHUNK = 32768
_POLL_INTERVAL = 0.05


class SSHTarget(NamedTuple):
    host: str
    port: int
    username: str
    private_key: str


def load_private_key(text: str) -> paramiko.PKey:
    for key_class in _KEY_CLASSES:
        try:
            return key_class.from_private_key(io.StringIO(text))
        except (paramiko.PasswordRequiredException, paramiko.SSHException, ValueError):
            continue
    raise paramiko.SSHException("unable to parse host private key")


def host_key_policy(name: str) -> paramiko.MissingHostKeyPolicy:
    name = (name or "").lower()
    if name == "reject":
        return paramiko.RejectPolicy()
    if name == "auto_add":
        return paramiko.AutoAddPolicy()
    return paramiko.WarningPolicy()


class SSHTransport:
    def __init__(self, connect_timeout: float = 10.0, command_timeout: float = 30.0, policy: str = "warning"):
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.policy = policy

    @contextmanager
    def _session(self, target: SSHTarget) -> Iterator[paramiko.SSHClient]:
        client = paramiko.SSHClient()
        client.load_system_host_keys()
        client.set_missing_host_key_policy(host_key_policy(self.policy))
        try:
            client.connect(
                hostname=target.host,
                port=target.port,
                username=target.username,
                pkey=load_private_key(target.private_key),
                timeout=self.connect_timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            yield client
        finally:
            client.close()

    def upload(self, target: SSHTarget, remote_path: str, content: str) -> None:
        try:
            with self._session(target) as client:
                sftp = client.open_sftp()
                try:
                    sftp.putfo(io.BytesIO(content.encode("utf-8")), remote_path)
                finally:
                    sftp.close()
        except (paramiko.SSHException, OSError) as exc:
            raise RemoteCopyError(f"copy to {target.host}:{remote_path} failed: {exc}") from exc
        logger.debug("remote_copy", extra={"extra": {"host": target.host, "port": target.port, "path": remote_path}})

    def _wait(self, channel: paramiko.Channel, host: str) -> Tuple[int, bytes, bytes]:
        # drain output while polling; a full channel window stalls the remote command
        out, err = bytearray(), bytearray()
        deadline = time.monotonic() + self.command_timeout
        while True:
            while channel.recv_ready():
                out += channel.recv(_READ_CHUNK)
            while channel.recv_stderr_ready():
                err += channel.recv_stderr(_READ_CHUNK)
            if channel.exit_status_ready():
                break
            if time.monotonic() >= deadline:
                raise RemoteExecError(f"command on {host} timed out after {self.command_timeout}s")
            time.sleep(_POLL_INTERVAL)
        return channel.recv_exit_status(), bytes(out), bytes(err)

    def run(self, target: SSHTarget, command: str) -> str:
        try:
            with self._session(target) as client:
                _, stdout, stderr = client.exec_command(command, timeout=self.command_timeout)
                status, out_b, err_b = self._wait(stdout.channel, target.host)
                out = (out_b + stdout.read()).decode("utf-8", errors="replace")
                err = (err_b + stderr.read()).decode("utf-8", errors="replace")
        except (paramiko.SSHException, OSError) as exc:
            raise RemoteExecError(f"command on {target.host} failed: {exc}") from exc
        if status != 0:
            raise RemoteExecError(f"command on {target.host} exited {status}: {err.strip()[:200]}")
        logger.debug("remote_exec", extra={"extra": {"host": target.host, "port": target.port, "status": status}})
        return out


def new_transport() -> SSHTransport:
    return SSHTransport(
        connect_timeout=settings.SSH_CONNECT_TIMEOUT,
        command_timeout=settings.SSH_COMMAND_TIMEOUT,
        policy=settings.SSH_HOST_KEY_POLICY,
    )
