import hashlib
import time
from supabase import Client
from civic_access.core.exceptions import AuthenticationMissing
from civic_access.core.permissions import PrincipalCache
from civic_access.core.principal import Session
from typing import Dict, Optional, Tuple
import logging

logger = logging.getLogger(__name__)

# In-memory cache for get_current_session to reduce Supabase auth calls (e.g. many parallel requests with same token)
_AUTH_SESSION_CACHE: Dict[str, Tuple[Session, float]] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500


def _token_key(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


class AuthService:
    def __init__(self, supabase: Client, principal_cache: Optional[PrincipalCache] = None):
        self.supabase = supabase
        self.principal_cache = principal_cache

    def get_current_session(self, token: str) -> Session:
        """Resolve a Supabase Auth token to a session. Uses short TTL cache to reduce auth API calls."""
        cache_key = _token_key(token)
        now = time.monotonic()
        if cache_key in _AUTH_SESSION_CACHE:
            session, expiry = _AUTH_SESSION_CACHE[cache_key]
            if now < expiry:
                return session
            del _AUTH_SESSION_CACHE[cache_key]
        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            error_msg = str(e)
            if "JWT" in error_msg or "expired" in error_msg.lower() or "invalid" in error_msg.lower():
                raise AuthenticationMissing("Invalid or expired token")
            logger.error(f"Supabase auth lookup failed: {e}")
            raise AuthenticationMissing("Authentication failed")
        if not user_response or not user_response.user:
            raise AuthenticationMissing("Invalid or expired token")
        user = user_response.user
        session = Session(user_id=user.id, user_email=user.email or "")
        if len(_AUTH_SESSION_CACHE) < _AUTH_CACHE_MAX_SIZE:
            _AUTH_SESSION_CACHE[cache_key] = (session, now + _AUTH_CACHE_TTL_SEC)
        return session

    def logout(self, token: str, user_id: str) -> bool:
        """Forget the session and its cached principal"""
        _AUTH_SESSION_CACHE.pop(_token_key(token), None)
        if self.principal_cache is not None:
            self.principal_cache.invalidate(user_id)
        try:
            # Supabase Auth tokens are stateless JWTs, so logout is mainly client-side
            self.supabase.auth.sign_out()
            return True
        except Exception as e:
            logger.warning(f"Supabase sign_out failed for user {user_id}: {e}")
            return False


def clear_session_cache() -> None:
    _AUTH_SESSION_CACHE.clear()
