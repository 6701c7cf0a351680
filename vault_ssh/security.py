from fastapi import Depends, HTTPException, status
from typing import Callable, List, Optional
from threading import Lock
from time import monotonic
from collections import defaultdict, deque
from .models import Principal
from .auth import verify_api_key, verify_jwt
from .settings import settings

def get_principal(
    p1: Optional[Principal] = Depends(verify_api_key),
    p2: Optional[Principal] = Depends(verify_jwt),
) -> Principal:
    p = p1 or p2
    if not p:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return p

def require_scopes(required: List[str]) -> Callable[[Principal], Principal]:
    def dep(p: Principal = Depends(get_principal)) -> Principal:
        if not set(required).issubset(set(p.scopes)):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden: missing scopes")
        _rate_limit_check(p)
        return p
    return dep

_rl_lock = Lock()
_rl_map = defaultdict(deque)

def _rate_limit_check(p: Principal):
    """Sliding window per subject; issuance opens remote sessions so it is throttled."""
    if not settings.RATE_LIMIT_ENABLED:
        return
    key = f"sub:{p.subject}"
    now = monotonic()
    cutoff = now - settings.RATE_LIMIT_WINDOW_SECONDS
    with _rl_lock:
        dq = _rl_map[key]
        while dq and dq[0] < cutoff:
            dq.popleft()
        if len(dq) >= settings.RATE_LIMIT_REQUESTS:
            raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Rate limit exceeded")
        dq.append(now)

def reset_rate_limits() -> None:
    with _rl_lock:
        _rl_map.clear()
