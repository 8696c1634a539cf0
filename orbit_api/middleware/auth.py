# orbit_api/middleware/auth.py
from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from fastapi import Request, status
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware

from orbit_api.core.config import settings
from orbit_api.core.exceptions import AuthenticationError, AuthorizationError
from orbit_api.core.logging import bind_tenant, get_structlog_logger

logger = get_structlog_logger(__name__)

ORGANIZATION_HEADER = "X-Organization-ID"

# Roles allowed to change tenant data; everyone in the org may read it.
WRITE_ROLES = ["admin", "manager"]
ADMIN_ROLES = ["admin"]


def _exempt_paths() -> List[str]:
    prefix = re.escape(settings.api_prefix)
    return [
        "/",
        "/metrics",
        "/docs",
        "/redoc",
        "/openapi.json",
        f"{prefix}/health(/.*)?",
        f"{prefix}/webhooks/ses-events",
        f"{prefix}/unsubscribe",
    ]


def client_info(request: Request) -> Dict[str, Optional[str]]:
    """Caller address and user agent, recorded on audit entries."""
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = forwarded.split(",")[0].strip() if forwarded else request.headers.get("x-real-ip")
    if not ip_address and request.client:
        ip_address = request.client.host
    return {"ip_address": ip_address or None, "user_agent": request.headers.get("user-agent")}


def _auth_error(status_code: int, code: str, message: str, details: Optional[Dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "code": code,
            "category": "auth",
            "message": message,
            "details": details or {},
        },
    )


class AuthMiddleware(BaseHTTPMiddleware):
    """Authentication middleware for API routes."""

    def __init__(self, app, exempt_paths: Optional[list] = None):
        super().__init__(app)
        self.exempt_paths = exempt_paths or _exempt_paths()
        self.exempt_patterns = [re.compile(path) for path in self.exempt_paths]

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS" or self._is_exempt_path(request.url.path):
            return await call_next(request)

        token = self._extract_token(request)

        if not token:
            logger.warning("auth.missing_token", path=request.url.path, method=request.method)
            return _auth_error(
                status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Authentication token is required"
            )

        try:
            payload = self._verify_token(token)
        except JWTError as e:
            logger.warning("auth.invalid_token", error=str(e), path=request.url.path)
            return _auth_error(
                status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Invalid authentication token"
            )

        if payload.get("type", "access") != "access":
            return _auth_error(
                status.HTTP_401_UNAUTHORIZED, "UNAUTHORIZED", "Invalid authentication token"
            )

        if not payload.get("active", True):
            logger.warning("auth.inactive_user", path=request.url.path, user_id=payload.get("sub"))
            return _auth_error(status.HTTP_403_FORBIDDEN, "FORBIDDEN", "User account is inactive")

        organization_id = payload.get("org_id")
        override = request.headers.get(ORGANIZATION_HEADER)
        if override and payload.get("platform_role"):
            organization_id = override

        request.state.user = {
            "id": payload.get("sub"),
            "email": payload.get("email"),
            "role": payload.get("role"),
            "platform_role": payload.get("platform_role"),
            "organization_id": organization_id,
            **client_info(request),
        }
        bind_tenant(organization_id)

        logger.debug(
            "auth.authenticated",
            user_id=payload.get("sub"),
            role=payload.get("role"),
            path=request.url.path,
        )

        return await call_next(request)

    def _is_exempt_path(self, path: str) -> bool:
        """Check if path is exempt from authentication."""
        for pattern in self.exempt_patterns:
            if pattern.fullmatch(path):
                return True
        return False

    def _extract_token(self, request: Request) -> Optional[str]:
        """Extract token from Authorization header."""
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return None

        parts = auth_header.split()
        if len(parts) != 2:
            return None

        scheme, token = parts
        if scheme.lower() != "bearer":
            return None

        return token

    def _verify_token(self, token: str) -> Dict:
        """Verify and decode JWT token. Expiry is enforced by jose."""
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options={"verify_aud": False},
        )


class TokenManager:
    """Manager for JWT token operations."""

    @staticmethod
    def create_access_token(
        data: Dict,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        """Create a new access token."""
        to_encode = {key: str(value) if isinstance(value, UUID) else value for key, value in data.items()}

        if expires_delta:
            expire = datetime.utcnow() + expires_delta
        else:
            expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

        to_encode.update({
            "exp": expire,
            "iat": datetime.utcnow(),
            "jti": str(uuid4()),
            "type": "access",
        })

        return jwt.encode(
            to_encode,
            settings.secret_key,
            algorithm=settings.algorithm,
        )

    @staticmethod
    def verify_token(token: str) -> Optional[Dict]:
        """Verify and decode a token."""
        try:
            return jwt.decode(
                token,
                settings.secret_key,
                algorithms=[settings.algorithm],
                options={"verify_aud": False},
            )
        except JWTError:
            return None


# Helper functions for route dependencies
async def get_current_user(request: Request) -> Dict:
    """Get current user from request state."""
    user = getattr(request.state, "user", None)
    if not user:
        raise AuthenticationError(message="User not authenticated")
    return user


async def get_current_org_id(request: Request) -> UUID:
    """Resolve the tenant of the request."""
    user = await get_current_user(request)
    organization_id = user.get("organization_id")
    if not organization_id:
        raise AuthorizationError(message="No organization selected for this user")

    try:
        return UUID(str(organization_id))
    except ValueError:
        raise AuthorizationError(
            message="Invalid organization identifier",
            details={"organization_id": str(organization_id)},
        )


def is_platform_user(user: Dict) -> bool:
    return bool(user.get("platform_role"))


async def require_role(user: Dict, allowed_roles: List[str]) -> None:
    """Check if user has required role. Platform users pass every check."""
    if is_platform_user(user):
        return

    if user.get("role") not in allowed_roles:
        raise AuthorizationError(
            message=f"Requires one of roles: {', '.join(allowed_roles)}",
            details={"user_role": user.get("role"), "allowed_roles": allowed_roles},
        )
