"""Error taxonomy for credential issuance.

``RequestError`` subclasses are caller-correctable problems (bad input,
policy mismatch) and surface as HTTP 400. ``InternalError`` subclasses are
infrastructure or configuration failures and surface as an opaque HTTP 500.
Every class carries a stable ``code`` used in the JSON error body.
"""


class CredentialError(Exception):
    code = "credential_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class RequestError(CredentialError):
    code = "bad_request"


class MissingRoleError(RequestError):
    code = "missing_role"

    def __init__(self):
        super().__init__("Missing role")


class MissingIPError(RequestError):
    code = "missing_ip"

    def __init__(self):
        super().__init__("Missing ip")


class RoleNotFoundError(RequestError):
    code = "role_not_found"

    def __init__(self, role: str):
        super().__init__(f"Role '{role}' not found")
        self.role = role


class NoUsernameError(RequestError):
    code = "no_username"

    def __init__(self):
        super().__init__("No default username registered. Use 'username' option")


class InvalidIPError(RequestError):
    code = "invalid_ip"

    def __init__(self, ip: str):
        super().__init__(f"Invalid IP '{ip}'")
        self.ip = ip


class InvalidCIDRError(RequestError):
    code = "invalid_cidr"

    def __init__(self, cidr: str):
        super().__init__(f"Error validating IP: invalid CIDR block '{cidr}'")
        self.cidr = cidr


class IPNotPermittedError(RequestError):
    code = "ip_not_permitted"

    def __init__(self, ip: str, role: str):
        super().__init__(f"IP[{ip}] does not belong to role[{role}]")
        self.ip = ip
        self.role = role


class InternalError(CredentialError):
    code = "internal_error"


class StorageError(InternalError):
    code = "storage_error"


class RoleConfigError(InternalError):
    code = "role_config_error"


class HostKeyNotFoundError(InternalError):
    code = "host_key_not_found"

    def __init__(self, key_name: str):
        super().__init__(f"key '{key_name}' not found")
        self.key_name = key_name


class KeyGenerationError(InternalError):
    code = "key_generation_failed"


class RemoteCopyError(InternalError):
    code = "remote_copy_failed"


class RemoteExecError(InternalError):
    code = "remote_exec_failed"


class OTPExhaustedError(InternalError):
    code = "otp_exhausted"

    def __init__(self, attempts: int):
        super().__init__(f"no free OTP slot after {attempts} attempts")
        self.attempts = attempts
