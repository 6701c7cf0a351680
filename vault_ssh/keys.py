from typing import Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .errors import KeyGenerationError


def generate_rsa_keys(bits: int) -> Tuple[str, str]:
    """Returns ``(public_openssh, private_pem)`` for a fresh RSA keypair.

    The public half is in ``authorized_keys`` line format so it can be
    appended to the target file as-is.
    """
    try:
        priv = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    except (ValueError, TypeError) as exc:
        raise KeyGenerationError(f"error generating key: {exc}") from exc
    private_pem = priv.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
    public_openssh = priv.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    ).decode("ascii")
    return public_openssh + "\n", private_pem
