import re
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

DEFAULT_SSH_PORT = 22
DEFAULT_KEY_BITS = 2048

# Installs (or uninstalls) a public key into an authorized_keys file.
# Invoked as: <script> install|uninstall <public_key_file> <authorized_keys_file>
# Any existing copy of the key is stripped first so repeated installs do not
# duplicate the entry.
DEFAULT_INSTALL_SCRIPT = """#!/bin/bash
set -e

if [ "$1" != "install" ] && [ "$1" != "uninstall" ]; then
  echo "usage: $0 install|uninstall <public_key_file> <authorized_keys_file>" >&2
  exit 1
fi

key_file="$2"
auth_file="$3"
tmp_file="$(mktemp)"

sudo mkdir -p "$(dirname "$auth_file")"
sudo touch "$auth_file"
sudo grep -vFf "$key_file" "$auth_file" > "$tmp_file" || true
cat "$tmp_file" | sudo tee "$auth_file" > /dev/null

if [ "$1" == "install" ]; then
  cat "$key_file" | sudo tee --append "$auth_file" > /dev/null
fi

rm -f "$key_file" "$tmp_file" "$0"
"""

_DURATION_RE = re.compile(r"(\d+)(h|m|s)")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}


def parse_duration(value: Any) -> int:
    """Accepts seconds as int/str, or compound strings like ``"1h30m"``."""
    if isinstance(value, bool):
        raise ValueError("duration must be a number of seconds or a duration string")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError("duration must not be negative")
        return int(value)
    if not isinstance(value, str):
        raise ValueError("duration must be a number of seconds or a duration string")
    raw = value.strip().lower()
    if raw.isdigit():
        return int(raw)
    pos = 0
    total = 0
    for m in _DURATION_RE.finditer(raw):
        if m.start() != pos:
            break
        total += int(m.group(1)) * _UNIT_SECONDS[m.group(2)]
        pos = m.end()
    if not raw or pos != len(raw):
        raise ValueError(f"invalid duration '{value}'")
    return total


class Principal(BaseModel):
    subject: str
    scopes: List[str] = Field(default_factory=list)


class _RoleBase(BaseModel):
    name: str = ""
    default_user: Optional[str] = None
    cidr_list: List[str] = Field(default_factory=list)
    # role-level lease override, seconds
    lease: Optional[int] = None
    lease_max: Optional[int] = None

    @field_validator("cidr_list", mode="before")
    @classmethod
    def split_cidrs(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [c.strip() for c in v.split(",") if c.strip()]
        return v

    @field_validator("lease", "lease_max", mode="before")
    @classmethod
    def parse_lease(cls, v: Any) -> Any:
        if v is None or v == "":
            return None
        return parse_duration(v)

    @model_validator(mode="after")
    def lease_max_needs_lease(self):
        # lease_max is only the grace period of a role-level lease
        if self.lease_max is not None and self.lease is None:
            raise ValueError("lease_max requires lease")
        return self


class OTPRole(_RoleBase):
    key_type: Literal["otp"] = "otp"


class DynamicRole(_RoleBase):
    key_type: Literal["dynamic"] = "dynamic"
    admin_user: str
    key_name: str
    port: int = DEFAULT_SSH_PORT
    key_bits: int = Field(default=DEFAULT_KEY_BITS, ge=1024)
    install_script: str = DEFAULT_INSTALL_SCRIPT

    @field_validator("install_script", mode="before")
    @classmethod
    def default_script(cls, v: Any) -> Any:
        return v or DEFAULT_INSTALL_SCRIPT


Role = Annotated[Union[OTPRole, DynamicRole], Field(discriminator="key_type")]
role_adapter: TypeAdapter = TypeAdapter(Role)


class HostKey(BaseModel):
    key: str


class OTPEntry(BaseModel):
    username: str
    ip: str


class LeaseConfig(BaseModel):
    lease: int
    lease_max: int

    @field_validator("lease", "lease_max", mode="before")
    @classmethod
    def parse(cls, v: Any) -> int:
        return parse_duration(v)


class Lease(BaseModel):
    duration: int
    grace_period: int


class CredsRequest(BaseModel):
    username: Optional[str] = None
    ip: str = ""


class IssuedSecret(BaseModel):
    lease_id: str
    lease_duration: int
    lease_grace_period: int
    renewable: bool = False
    data: Dict[str, Any]
    # kept server side for revocation bookkeeping; never returned to callers
    internal_data: Dict[str, Any] = Field(default_factory=dict, exclude=True)


class CredsResponse(BaseModel):
    lease_id: str
    lease_duration: int
    lease_grace_period: int
    renewable: bool
    data: Dict[str, Any]
