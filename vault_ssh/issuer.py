import logging
import uuid
from typing import Callable, Optional, Union

from .dynamic import DynamicKeyInstaller
from .errors import RoleConfigError
from .lease import apply_lease
from .models import DynamicRole, IssuedSecret, OTPRole
from .otp import OTPIssuer
from .roles import validate_request
from .salt import Salt
from .storage import Storage
from .transport import SSHTransport

logger = logging.getLogger("vault_ssh.issuer")


class CredentialIssuer:
    """validate role -> issue OTP or dynamic key -> apply lease -> shape secret

    ``salt`` may be a zero-argument callable; it is only resolved once the
    request has passed validation, so a rejected request never reaches
    storage for it.
    """

    def __init__(self, storage: Storage, salt: Union[Salt, Callable[[], Salt]], transport: SSHTransport, otp_max_attempts: int = 16):
        self.storage = storage
        self._salt = salt
        self.transport = transport
        self.otp_max_attempts = otp_max_attempts

    def _resolve_salt(self) -> Salt:
        if isinstance(self._salt, Salt):
            return self._salt
        return self._salt()

    def issue(self, role_name: str, ip: str, username: Optional[str] = None) -> IssuedSecret:
        req = validate_request(self.storage, role_name, ip, username)
        role = req.role

        if isinstance(role, OTPRole):
            otp_issuer = OTPIssuer(self.storage, self._resolve_salt(), max_attempts=self.otp_max_attempts)
            otp = otp_issuer.issue(req.username, req.ip)
            data = {"key_type": role.key_type, "key": otp}
            internal = {"otp": otp}
        elif isinstance(role, DynamicRole):
            installer = DynamicKeyInstaller(self.storage, self._resolve_salt(), self.transport)
            public_key, private_key = installer.install(role, req.username, req.ip)
            data = {"key": private_key, "key_type": role.key_type}
            internal = {
                "admin_user": role.admin_user,
                "username": req.username,
                "ip": req.ip,
                "host_key_name": role.key_name,
                "dynamic_public_key": public_key,
                "port": role.port,
                "install_script": role.install_script,
            }
        else:
            raise RoleConfigError(f"key type unknown for role '{role_name}'")

        lease = apply_lease(role, self.storage)
        secret = IssuedSecret(
            lease_id=f"creds/{role_name}/{uuid.uuid4()}",
            lease_duration=lease.duration,
            lease_grace_period=lease.grace_period,
            data=data,
            internal_data=internal,
        )
        logger.info(
            "credential_issued",
            extra={"extra": {"role": role_name, "key_type": role.key_type, "ip": req.ip, "user": req.username, "lease_duration": lease.duration}},
        )
        return secret
