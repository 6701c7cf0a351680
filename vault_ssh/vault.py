from typing import Optional, Dict, Any
import hvac
from .settings import settings

def new_vault_client() -> hvac.Client:
    client = hvac.Client(url=settings.VAULT_ADDR, namespace=settings.VAULT_NAMESPACE or None)
    if settings.VAULT_TOKEN:
        client.token = settings.VAULT_TOKEN
    elif settings.VAULT_ROLE_ID and settings.VAULT_SECRET_ID:
        resp = client.auth.approle.login(role_id=settings.VAULT_ROLE_ID, secret_id=settings.VAULT_SECRET_ID)
        client.token = resp["auth"]["client_token"]
    else:
        raise RuntimeError("No Vault auth configured (token or AppRole required)")
    if not client.is_authenticated():
        raise RuntimeError("Vault auth failed")
    return client

def kv_read(client: hvac.Client, path: str) -> Dict[str, Any]:
    return client.secrets.kv.v2.read_secret_version(mount_point=settings.KV_MOUNT, path=path)

def kv_write(client: hvac.Client, path: str, data: Dict[str, Any], cas: Optional[int] = None):
    return client.secrets.kv.v2.create_or_update_secret(mount_point=settings.KV_MOUNT, path=path, secret=data, cas=cas)
