"""
Bearer-token authentication against the MediConnect Keycloak realm.

Every request resolves to a UserContext carrying one of the three visa
workflow roles. Hospital staff accounts must also carry a ``hospital_id``
claim (a Keycloak user-attribute mapper); that claim, not the account id,
decides which applications the hospital can see and move.

Set AUTH_DISABLED=true to act as a dev admin without Keycloak.
"""

import logging
import time
from typing import Annotated

import httpx
import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from mediconnect_db.enums import UserRole

from ..core.auth import build_data_scope
from ..core.config import settings
from ..schemas.auth import DataScope, TokenPayload, UserContext

logger = logging.getLogger(__name__)

_bearer = HTTPBearer(auto_error=False)

# Most privileged first: a token holding several realm roles acts as the first match.
_ROLE_PRECEDENCE = (UserRole.ADMIN, UserRole.HOSPITAL, UserRole.PATIENT)


class RealmKeys:
    """Signing keys of the Keycloak realm, keyed by ``kid``.

    Reloaded once the cache is older than JWKS_CACHE_TTL, and on an unknown
    ``kid`` so a rotated realm key is picked up without a restart.
    """

    def __init__(self) -> None:
        self._keys: dict[str, jwt.PyJWK] = {}
        self._loaded_at = 0.0

    @property
    def issuer(self) -> str:
        return f"{settings.KEYCLOAK_URL}/realms/{settings.KEYCLOAK_REALM}"

    def _load(self) -> None:
        url = f"{self.issuer}/protocol/openid-connect/certs"
        try:
            response = httpx.get(url, timeout=5)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Cannot load realm keys from %s: %s", url, exc)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Authentication service unavailable",
            ) from exc
        key_set = jwt.PyJWKSet.from_dict(response.json())
        self._keys = {key.key_id: key for key in key_set.keys}
        self._loaded_at = time.monotonic()
        logger.info("Loaded %d realm signing keys", len(self._keys))

    def key_for(self, kid: str | None) -> jwt.PyJWK:
        stale = time.monotonic() - self._loaded_at > settings.JWKS_CACHE_TTL
        if stale or kid not in self._keys:
            self._load()
        try:
            return self._keys[kid]
        except KeyError:
            raise jwt.InvalidTokenError(f"Unknown signing key {kid!r}") from None

    def clear(self) -> None:
        self._keys = {}
        self._loaded_at = 0.0


realm_keys = RealmKeys()


def _decode_token(token: str) -> TokenPayload:
    """Verify an RS256 access token issued by the realm and return its claims."""
    kid = jwt.get_unverified_header(token).get("kid")
    claims = jwt.decode(
        token,
        realm_keys.key_for(kid).key,
        algorithms=["RS256"],
        issuer=realm_keys.issuer,
        options={"verify_aud": False},
    )
    return TokenPayload(**claims)


def _resolve_role(token_payload: TokenPayload) -> UserRole:
    """Map realm roles to a workflow role. Keycloak built-in roles are ignored."""
    granted = set(token_payload.realm_access.get("roles", []))
    for role in _ROLE_PRECEDENCE:
        if role.value in granted:
            return role
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="No recognized role assigned",
    )


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


_DEV_ADMIN = UserContext(
    user_id="dev-user",
    role=UserRole.ADMIN,
    email="dev@mediconnect.local",
    name="Dev User",
    data_scope=DataScope(full_pipeline=True),
)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)],
) -> UserContext:
    if settings.AUTH_DISABLED:
        return _DEV_ADMIN
    if credentials is None:
        raise _unauthorized("Missing authentication token")

    try:
        payload = _decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError as exc:
        raise _unauthorized("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise _unauthorized("Invalid token") from exc

    role = _resolve_role(payload)
    if role == UserRole.HOSPITAL and not payload.hospital_id:
        logger.warning("Hospital account %s has no hospital_id claim", payload.sub)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Hospital account is not linked to a hospital",
        )

    return UserContext(
        user_id=payload.sub,
        role=role,
        email=payload.email,
        name=payload.name or payload.preferred_username,
        data_scope=build_data_scope(role, payload.sub, hospital_id=payload.hospital_id),
    )


CurrentUser = Annotated[UserContext, Depends(get_current_user)]


def require_roles(*allowed_roles: UserRole):
    """Route dependency admitting only the listed workflow roles."""
    allowed = frozenset(allowed_roles)

    async def _check(user: CurrentUser) -> UserContext:
        if user.role not in allowed:
            logger.warning(
                "Denied %s (%s): needs one of %s",
                user.user_id,
                user.role.value,
                sorted(r.value for r in allowed),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return _check
