import json
import os
from typing import Any, Dict, List, Optional, Tuple
from fastapi.security import APIKeyHeader
from fastapi import Depends
from ..models import Principal
from ..settings import settings

DEFAULT_SCOPES = ["read", "write"]

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
_KEYMAP_CACHE: Dict[str, Dict[str, Tuple[str, List[str]]]] = {}

def _entry(value: Any) -> Optional[Tuple[str, List[str]]]:
    # token -> "subject" or token -> {"subject": ..., "scopes": [...]}
    if isinstance(value, str) and value:
        return value, list(DEFAULT_SCOPES)
    if isinstance(value, dict) and value.get("subject"):
        scopes = value.get("scopes") or DEFAULT_SCOPES
        return str(value["subject"]), [str(s) for s in scopes]
    return None

def _load_keymap() -> Dict[str, Tuple[str, List[str]]]:
    raw = settings.API_KEYS_JSON or os.environ.get("API_KEYS_JSON") or ""
    if not raw:
        return {}
    cached = _KEYMAP_CACHE.get(raw)
    if cached is not None:
        return cached
    try:
        parsed = json.loads(raw)
    except ValueError:
        parsed = {}
    result: Dict[str, Tuple[str, List[str]]] = {}
    if isinstance(parsed, dict):
        for token, value in parsed.items():
            entry = _entry(value)
            if entry:
                result[str(token)] = entry
    _KEYMAP_CACHE.clear()
    _KEYMAP_CACHE[raw] = result
    return result

def verify_api_key(x_api_key: Optional[str] = Depends(api_key_header)) -> Optional[Principal]:
    if not settings.AUTH_API_KEY_ENABLED or not x_api_key:
        return None
    entry = _load_keymap().get(x_api_key.strip())
    if not entry:
        return None
    subject, scopes = entry
    return Principal(subject=subject, scopes=scopes)
