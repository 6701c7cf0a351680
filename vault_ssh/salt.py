import hashlib
import hmac
import logging
import uuid
from typing import Optional, Tuple

from .errors import StorageError
from .storage import Storage

logger = logging.getLogger("vault_ssh.salt")

SALT_STORAGE_KEY = "salt"


class Salt:
    """One-way transform for secret identifiers.

    Storage keys derived through ``salt_id`` cannot be reversed into the
    original value without the salt material.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("salt secret must not be empty")
        self._secret = secret.encode("utf-8")

    def salt_id(self, value: str) -> str:
        return hmac.new(self._secret, value.encode("utf-8"), hashlib.sha256).hexdigest()

    @classmethod
    def load_or_create(cls, storage: Storage, configured: Optional[str] = None) -> "Salt":
        """Use the configured salt, else the one persisted in storage.

        A missing persisted salt is generated once; concurrent first starts
        converge on whichever write won.
        """
        if configured:
            return cls(configured)
        entry = storage.get(SALT_STORAGE_KEY)
        if entry and entry.get("value"):
            return cls(entry["value"])
        candidate = str(uuid.uuid4())
        if storage.create_if_absent(SALT_STORAGE_KEY, {"value": candidate}):
            logger.info("salt_created", extra={"extra": {"key": SALT_STORAGE_KEY}})
            return cls(candidate)
        entry = storage.get(SALT_STORAGE_KEY)
        if not entry or not entry.get("value"):
            raise StorageError("salt entry vanished after concurrent create")
        return cls(entry["value"])


def generate_salted_otp(salt: Salt) -> Tuple[str, str]:
    """Returns a fresh UUID4 value and its salted identifier."""
    otp = str(uuid.uuid4())
    return otp, salt.salt_id(otp)
