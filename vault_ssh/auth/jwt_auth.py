import base64
import json
import os
import time
from typing import Optional, Dict, Any
from fastapi import Header
import httpx
from jose import jwt, JWTError
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives import serialization
from ..models import Principal
from ..settings import settings

_jwks_cache: Dict[str, Dict[str, Any]] = {}

def _fetch_jwks(url: str) -> Optional[Dict[str, Any]]:
    now = int(time.time())
    entry = _jwks_cache.get(url)
    if entry and entry["expires"] > now:
        return entry["jwks"]
    try:
        with httpx.Client(timeout=5.0) as client:
            resp = client.get(url)
            resp.raise_for_status()
            jwks = resp.json()
    except (httpx.HTTPError, ValueError):
        # stale keys beat no keys while the JWKS endpoint is down
        return entry["jwks"] if entry else None
    _jwks_cache[url] = {"jwks": jwks, "expires": now + max(30, settings.JWT_JWKS_CACHE_SECONDS)}
    return jwks

def _load_jwks() -> Optional[Dict[str, Any]]:
    if settings.JWT_JWKS_FILE and os.path.exists(settings.JWT_JWKS_FILE):
        with open(settings.JWT_JWKS_FILE, "r", encoding="utf-8") as f:
            return json.load(f)
    if settings.JWT_JWKS_URL:
        return _fetch_jwks(settings.JWT_JWKS_URL)
    return None

def _select_jwk(jwks: Dict[str, Any], kid: Optional[str]) -> Optional[Dict[str, Any]]:
    keys = jwks.get("keys", []) if isinstance(jwks, dict) else []
    if kid:
        return next((k for k in keys if k.get("kid") == kid), None)
    if settings.JWT_REQUIRE_KID:
        return None
    return next((k for k in keys if k.get("kty") == "RSA" and k.get("use", "sig") == "sig"), None)

def _b64url_int(s: str) -> int:
    return int.from_bytes(base64.urlsafe_b64decode(s + "=" * (-len(s) % 4)), "big")

def _rsa_pem(jwk: Dict[str, Any]) -> Optional[str]:
    if jwk.get("kty") != "RSA" or not jwk.get("n") or not jwk.get("e"):
        return None
    pub = rsa.RSAPublicNumbers(e=_b64url_int(jwk["e"]), n=_b64url_int(jwk["n"])).public_key()
    return pub.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")

def _decode_kwargs() -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        "options": {"verify_aud": settings.JWT_VALIDATE_AUDIENCE, "verify_iss": settings.JWT_VALIDATE_ISSUER},
    }
    if settings.JWT_VALIDATE_AUDIENCE:
        kwargs["audience"] = settings.JWT_AUDIENCE
    if settings.JWT_VALIDATE_ISSUER:
        kwargs["issuer"] = settings.JWT_ISSUER
    return kwargs

def verify_jwt(authorization: Optional[str] = Header(None)) -> Optional[Principal]:
    if not settings.AUTH_JWT_ENABLED:
        return None
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", 1)[1]
    try:
        hdr = jwt.get_unverified_header(token) or {}
        alg = hdr.get("alg")
        if alg == "RS256":
            jwks = _load_jwks()
            jwk = _select_jwk(jwks, hdr.get("kid")) if jwks else None
            pem = _rsa_pem(jwk) if jwk else None
            if not pem:
                return None
            payload = jwt.decode(token, pem, algorithms=["RS256"], **_decode_kwargs())
        elif alg == "HS256" and settings.JWT_HS256_SECRET:
            payload = jwt.decode(token, settings.JWT_HS256_SECRET, algorithms=["HS256"], **_decode_kwargs())
        else:
            return None
    except (JWTError, ValueError):
        return None
    sub = payload.get("sub")
    if not sub:
        return None
    scopes = payload.get("scopes", [])
    if isinstance(scopes, str):
        scopes = scopes.split()
    return Principal(subject=sub, scopes=scopes)
