import logging
from typing import Optional

from pydantic import ValidationError

from .errors import StorageError
from .models import Lease, LeaseConfig, Role
from .storage import Storage

logger = logging.getLogger("vault_ssh.lease")

LEASE_CONFIG_KEY = "config/lease"
DEFAULT_LEASE_SECONDS = 10 * 60
DEFAULT_GRACE_SECONDS = 2 * 60


def load_lease_config(storage: Storage) -> Optional[LeaseConfig]:
    raw = storage.get(LEASE_CONFIG_KEY)
    if raw is None:
        return None
    return LeaseConfig.model_validate(raw)


def apply_lease(role: Role, storage: Storage) -> Lease:
    """Effective lease for a credential issued under ``role``.

    Precedence: role override, then mount-level ``config/lease``, then the
    10m/2m default. A failed lookup counts as "not configured".
    """
    if role.lease is not None:
        grace = role.lease_max if role.lease_max is not None else DEFAULT_GRACE_SECONDS
        return Lease(duration=role.lease, grace_period=grace)
    try:
        config = load_lease_config(storage)
    except (StorageError, ValidationError) as exc:
        logger.warning("lease_lookup_failed", extra={"extra": {"role": role.name, "error": str(exc)[:200]}})
        config = None
    if config is not None:
        return Lease(duration=config.lease, grace_period=config.lease_max)
    return Lease(duration=DEFAULT_LEASE_SECONDS, grace_period=DEFAULT_GRACE_SECONDS)
