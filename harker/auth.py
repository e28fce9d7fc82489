# harker/auth.py
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

import httpx
from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from harker import config, crud
from harker.database import get_db
from harker.models import User, utcnow

logger = logging.getLogger(__name__)

# scrypt cost parameters, 16 MiB of memory per hash
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
SCRYPT_DKLEN = 64

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, as returned by the auth gates."""

    id: Union[int, str]
    username: str
    is_admin: bool = False

    @property
    def user_key(self) -> str:
        # activity tables store provider ids and local ids alike as strings
        return str(self.id)

    @classmethod
    def from_user(cls, user: User) -> "Principal":
        return cls(id=user.id, username=user.username, is_admin=user.is_admin)


# --- Passwords ---


def _scrypt(password: str, salt: str) -> bytes:
    return hashlib.scrypt(
        password.encode("utf-8"),
        salt=salt.encode("utf-8"),
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        dklen=SCRYPT_DKLEN,
    )


async def hash_password(password: str) -> str:
    """Return ``"<hex digest>.<salt>"`` for a fresh random salt."""
    salt = secrets.token_hex(16)
    digest = await run_in_threadpool(_scrypt, password, salt)
    return f"{digest.hex()}.{salt}"


async def verify_password(supplied: str, stored: str) -> bool:
    hashed, sep, salt = stored.partition(".")
    if not sep or not hashed or not salt:
        return False
    try:
        expected = bytes.fromhex(hashed)
    except ValueError:
        return False
    digest = await run_in_threadpool(_scrypt, supplied, salt)
    return hmac.compare_digest(digest, expected)


async def authenticate_user(db: AsyncSession, username: str, password: str) -> Optional[User]:
    user = await crud.get_user_by_username(db, username)
    if not user or not await verify_password(password, user.password):
        return None
    return user


# --- Cookie sessions ---


def create_session_token(sid: str, expires_at: datetime) -> str:
    return jwt.encode({"sid": sid, "exp": expires_at}, config.SESSION_SECRET, algorithm=config.SESSION_ALGORITHM)


def read_session_token(token: str) -> Optional[str]:
    try:
        payload = jwt.decode(token, config.SESSION_SECRET, algorithms=[config.SESSION_ALGORITHM])
    except JWTError:
        return None
    return payload.get("sid")


async def start_session(db: AsyncSession, response: Response, user: User) -> None:
    sid = secrets.token_urlsafe(32)
    expires_at = utcnow() + timedelta(hours=config.SESSION_TTL_HOURS)
    await crud.purge_expired_sessions(db)
    await crud.create_session(db, sid, user.id, expires_at)
    response.set_cookie(
        config.SESSION_COOKIE_NAME,
        create_session_token(sid, expires_at),
        max_age=config.SESSION_TTL_HOURS * 3600,
        httponly=True,
        samesite="lax",
        secure=config.SESSION_COOKIE_SECURE,
    )


async def end_session(db: AsyncSession, request: Request, response: Response) -> None:
    token = request.cookies.get(config.SESSION_COOKIE_NAME)
    sid = read_session_token(token) if token else None
    if sid:
        await crud.delete_session(db, sid)
    response.delete_cookie(config.SESSION_COOKIE_NAME, httponly=True, samesite="lax")


async def _session_principal(request: Request, db: AsyncSession) -> Optional[Principal]:
    token = request.cookies.get(config.SESSION_COOKIE_NAME)
    if not token:
        return None
    sid = read_session_token(token)
    if not sid:
        return None
    session = await crud.get_session(db, sid)
    if not session:
        return None
    if session.expires_at <= utcnow():
        await crud.delete_session(db, sid)
        return None
    user = await crud.get_user(db, session.user_id)
    return Principal.from_user(user) if user else None


# --- Bearer tokens ---


class IdentityProviderError(Exception):
    """The identity provider could not be reached or answered with a server error."""


class IdentityProviderClient:
    """Validates bearer tokens against the identity provider on every request."""

    def __init__(self, base_url: str, api_key: Optional[str] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.transport = transport

    async def get_user(self, token: str) -> Optional[dict]:
        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key
        try:
            async with httpx.AsyncClient(base_url=self.base_url, transport=self.transport) as client:
                response = await client.get("/auth/v1/user", headers=headers)
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"Identity provider unreachable: {exc}") from exc
        if response.status_code >= 500:
            raise IdentityProviderError(f"Identity provider returned {response.status_code}")
        if response.status_code != 200:
            return None
        return response.json()


_identity_provider: Optional[IdentityProviderClient] = None


def get_identity_provider() -> Optional[IdentityProviderClient]:
    global _identity_provider
    if config.AUTH_STRATEGY != "bearer":
        return None
    if _identity_provider is None:
        _identity_provider = IdentityProviderClient(config.IDENTITY_PROVIDER_URL, config.IDENTITY_PROVIDER_KEY)
    return _identity_provider


async def _bearer_principal(
    credentials: Optional[HTTPAuthorizationCredentials],
    provider: IdentityProviderClient,
) -> Optional[Principal]:
    if credentials is None or not credentials.credentials:
        return None
    user = await provider.get_user(credentials.credentials)
    if not user or not user.get("id"):
        return None
    username = user.get("email") or str(user["id"])
    app_metadata = user.get("app_metadata") or {}
    is_admin = username in config.ADMIN_USERNAMES or bool(app_metadata.get("is_admin"))
    return Principal(id=str(user["id"]), username=username, is_admin=is_admin)


# --- Gates ---


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
    provider: Optional[IdentityProviderClient] = Depends(get_identity_provider),
) -> Optional[Principal]:
    if config.AUTH_STRATEGY == "bearer":
        return await _bearer_principal(credentials, provider)
    return await _session_principal(request, db)


async def require_user(principal: Optional[Principal] = Depends(get_current_principal)) -> Principal:
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return principal


async def require_admin(principal: Optional[Principal] = Depends(get_current_principal)) -> Principal:
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden: Admin access required")
    return principal
