from .api_key import verify_api_key
from .jwt_auth import verify_jwt
__all__ = ["verify_api_key", "verify_jwt"]
