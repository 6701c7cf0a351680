import logging
import shlex
from typing import Tuple

from pydantic import ValidationError

from .errors import HostKeyNotFoundError, StorageError
from .keys import generate_rsa_keys
from .models import DynamicRole, HostKey
from .salt import Salt, generate_salted_otp
from .storage import Storage
from .transport import SSHTarget, SSHTransport

logger = logging.getLogger("vault_ssh.dynamic")


def authorized_keys_path(username: str) -> str:
    if username == "root":
        return "/root/.ssh/authorized_keys"
    return f"/home/{username}/.ssh/authorized_keys"


def install_command(script_file: str, public_key_file: str, username: str) -> str:
    script = shlex.quote(script_file)
    return (
        f"chmod +x {script} && "
        f"./{script} install {shlex.quote(public_key_file)} {shlex.quote(authorized_keys_path(username))}"
    )


class DynamicKeyInstaller:
    """Generates an RSA keypair and installs its public half on a target.

    Steps run strictly in order and the first failure aborts the rest. Files
    already copied to the target are left there; nothing is rolled back.
    """

    def __init__(self, storage: Storage, salt: Salt, transport: SSHTransport):
        self.storage = storage
        self.salt = salt
        self.transport = transport

    def host_key(self, key_name: str) -> HostKey:
        raw = self.storage.get(f"keys/{key_name}")
        if raw is None:
            raise HostKeyNotFoundError(key_name)
        try:
            return HostKey.model_validate(raw)
        except ValidationError as exc:
            raise StorageError(f"error reading the host key '{key_name}'") from exc

    def install(self, role: DynamicRole, username: str, ip: str) -> Tuple[str, str]:
        host_key = self.host_key(role.key_name)
        public_key, private_key = generate_rsa_keys(role.key_bits)

        # temp file names only need to be unpredictable, nothing is stored
        _, public_key_file = generate_salted_otp(self.salt)
        script_file = f"{public_key_file}.sh"
        target = SSHTarget(host=ip, port=role.port, username=role.admin_user, private_key=host_key.key)

        self.transport.upload(target, public_key_file, public_key)
        self.transport.upload(target, script_file, role.install_script)
        self.transport.run(target, install_command(script_file, public_key_file, username))

        logger.info(
            "dynamic_key_installed",
            extra={"extra": {"role": role.name, "ip": ip, "user": username, "admin_user": role.admin_user, "port": role.port}},
        )
        return public_key, private_key
