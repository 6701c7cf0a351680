import logging

from .errors import OTPExhaustedError
from .models import OTPEntry
from .salt import Salt, generate_salted_otp
from .storage import Storage

logger = logging.getLogger("vault_ssh.otp")

OTP_PREFIX = "otp/"


class OTPIssuer:
    """Issues one-time passwords bound to a (username, ip) pair.

    Only the salted form of an OTP is written to storage. Slot claiming uses
    ``create_if_absent`` so two concurrent issuers can never overwrite each
    other's entry.
    """

    def __init__(self, storage: Storage, salt: Salt, max_attempts: int = 16):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.storage = storage
        self.salt = salt
        self.max_attempts = max_attempts

    def issue(self, username: str, ip: str) -> str:
        entry = OTPEntry(username=username, ip=ip).model_dump()
        for attempt in range(1, self.max_attempts + 1):
            otp, salted = generate_salted_otp(self.salt)
            if self.storage.create_if_absent(OTP_PREFIX + salted, entry):
                logger.debug("otp_stored", extra={"extra": {"ip": ip, "user": username, "attempt": attempt}})
                return otp
            logger.warning("otp_collision", extra={"extra": {"attempt": attempt}})
        raise OTPExhaustedError(self.max_attempts)
