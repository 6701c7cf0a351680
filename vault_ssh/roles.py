import ipaddress
from dataclasses import dataclass
from typing import Iterable, Optional

from pydantic import ValidationError

from .errors import (
    IPNotPermittedError,
    InvalidCIDRError,
    InvalidIPError,
    MissingIPError,
    MissingRoleError,
    NoUsernameError,
    RoleConfigError,
    RoleNotFoundError,
)
from .models import Role, role_adapter
from .storage import Storage


@dataclass(frozen=True)
class ValidatedRequest:
    role: Role
    username: str
    ip: str


def load_role(storage: Storage, name: str) -> Optional[Role]:
    """Reads ``roles/<name>``; an unrecognized key type is a config error."""
    raw = storage.get(f"roles/{name}")
    if raw is None:
        return None
    try:
        role = role_adapter.validate_python({**raw, "name": name})
    except ValidationError as exc:
        raise RoleConfigError(f"role '{name}' is malformed: {exc.error_count()} error(s)") from exc
    return role


def cidr_contains_ip(ip: str, cidr_list: Iterable[str]) -> bool:
    addr = ipaddress.ip_address(ip)
    for cidr in cidr_list:
        try:
            network = ipaddress.ip_network(cidr.strip(), strict=False)
        except ValueError as exc:
            raise InvalidCIDRError(cidr) from exc
        if addr.version == network.version and addr in network:
            return True
    return False


def validate_request(storage: Storage, role_name: str, ip: str, username: Optional[str] = None) -> ValidatedRequest:
    if not role_name:
        raise MissingRoleError()
    if not ip:
        raise MissingIPError()

    role = load_role(storage, role_name)
    if role is None:
        raise RoleNotFoundError(role_name)

    if not username:
        if not role.default_user:
            raise NoUsernameError()
        username = role.default_user

    try:
        addr = ipaddress.ip_address(ip.strip())
    except ValueError as exc:
        raise InvalidIPError(ip) from exc
    # ::ffff:a.b.c.d is matched and reported as a.b.c.d
    if addr.version == 6 and addr.ipv4_mapped:
        addr = addr.ipv4_mapped
    canonical = str(addr)

    if not cidr_contains_ip(canonical, role.cidr_list):
        raise IPNotPermittedError(canonical, role_name)

    return ValidatedRequest(role=role, username=username, ip=canonical)
