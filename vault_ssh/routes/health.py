from datetime import datetime, timezone
import json

from fastapi import APIRouter
from fastapi.responses import Response

import hvac

from ..errors import StorageError
from ..storage import get_storage


def _json_ok(payload: dict, *, status_code: int = 200) -> Response:
    """Return JSON with canonical spacing expected by health checks."""
    return Response(
        content=json.dumps(payload, ensure_ascii=False, separators=(", ", ": ")),
        media_type="application/json",
        status_code=status_code,
    )


router = APIRouter()


@router.get("/healthz")
async def healthz():
    return _json_ok({"ok": True, "time": datetime.now(timezone.utc).isoformat()})


@router.get("/livez")
async def livez():
    return _json_ok({"ok": True})


@router.get("/readyz")
async def readyz():
    storage_status = {"ok": True, "detail": "ready"}
    try:
        if not get_storage().ping():
            storage_status = {"ok": False, "detail": "storage unauthenticated"}
    except (StorageError, hvac.exceptions.VaultError) as exc:
        storage_status = {"ok": False, "detail": f"storage error: {exc}"}
    except Exception as exc:
        storage_status = {"ok": False, "detail": f"storage error: {exc}"}

    payload = {
        "ok": storage_status["ok"],
        "time": datetime.now(timezone.utc).isoformat(),
        "storage": storage_status,
    }
    return _json_ok(payload, status_code=200 if storage_status["ok"] else 503)
