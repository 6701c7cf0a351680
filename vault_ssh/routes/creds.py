from fastapi import Depends, Path, Request
from fastapi.concurrency import run_in_threadpool
from .utils import Router as APIRouter
import logging
from functools import partial
from ..issuer import CredentialIssuer
from ..models import CredsRequest, CredsResponse, IssuedSecret, Principal
from ..salt import Salt
from ..security import require_scopes
from ..settings import settings
from ..storage import get_storage
from ..transport import new_transport

ROLE_PATTERN = r"^[A-Za-z0-9_-]+$"

CREDS_SUMMARY = "Creates a credential for establishing SSH connection with the remote host."
CREDS_DESCRIPTION = """
Generates a new key for establishing an SSH session with the target host.
Depending on the role's key type this is either a One Time Password (otp),
recorded for later verification, or a dynamic RSA key whose public half is
installed into the target user's authorized_keys file using the role's
shared admin key. "creds/web" issues a credential for the 'web' role.

Credentials carry a lease; once it expires the credential is considered
revoked.
"""

router = APIRouter(tags=["ssh"], responses={400: {"description": "Invalid request or IP not permitted by role"}})


def _issue(role: str, body: CredsRequest) -> IssuedSecret:
    storage = get_storage()
    # resolved lazily so a rejected request never touches the salt entry
    salt = partial(Salt.load_or_create, storage, settings.OTP_SALT)
    issuer = CredentialIssuer(storage, salt, new_transport(), otp_max_attempts=settings.OTP_MAX_ATTEMPTS)
    return issuer.issue(role, body.ip, body.username)


@router.post("/creds/{role}", response_model=CredsResponse, summary=CREDS_SUMMARY, description=CREDS_DESCRIPTION)
async def create_creds(
    body: CredsRequest,
    request: Request,
    role: str = Path(..., pattern=ROLE_PATTERN),
    p: Principal = Depends(require_scopes(["write"])),
):
    secret = await run_in_threadpool(_issue, role, body)
    key_type = secret.data.get("key_type")
    issued = getattr(request.app.state, "issued_total", None)
    if issued is not None:
        issued.labels(key_type).inc()
    logging.getLogger("vault_ssh.response").info(
        "creds_issue",
        extra={
            "extra": {
                "subject": p.subject,
                "role": role,
                "key_type": key_type,
                "lease_id_suffix": secret.lease_id[-8:],
                "request_id": request.headers.get("x-request-id"),
            }
        },
    )
    return CredsResponse(**secret.model_dump())
