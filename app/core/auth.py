from __future__ import annotations

import json
from typing import Iterable, Optional

import urllib3
from fastapi import Depends, Request
from google.auth.transport.urllib3 import Request as GoogleAuthRequest
from google.oauth2 import id_token as google_id_token

from app.core.config import settings
from app.core.errors import Forbidden, InternalError, Unauthorized
from app.core.paths import resolve_repo_path
from app.core.roles import ADMIN_ROLES, Role, has_required_role, parse_roles
from app.schemas.user import UserContext


async def get_current_user(request: Request) -> UserContext:
    bearer = _read_bearer_token(request)
    if bearer:
        token_info = _verify_google_id_token(bearer)
        email = str(token_info.get("email", "")).lower()
        if not email:
            raise Unauthorized("Invalid token (missing email)")
        if settings.google_hosted_domain and token_info.get("hd") != settings.google_hosted_domain:
            raise Forbidden("User not in allowed domain")
        return UserContext(
            user_id=str(token_info.get("sub") or email),
            email=email,
            roles=_with_admin_allow_list(email, [Role.USER]),
            full_name=token_info.get("name") or _derive_name_from_email(email),
        )

    if settings.auth_mode == "google":
        raise Unauthorized("Missing bearer token")

    # Dev-mode user context:
    # - X-User-Email: user@umich.edu
    # - X-User-Roles: ADMIN,USER
    email = (request.headers.get("x-user-email") or "").strip().lower()
    if not email:
        raise Unauthorized("Missing session")
    roles = parse_roles(request.headers.get("x-user-roles")) or [Role.USER]
    return UserContext(
        user_id=request.headers.get("x-user-id") or email,
        email=email,
        roles=_with_admin_allow_list(email, roles),
        full_name=request.headers.get("x-user-name") or _derive_name_from_email(email),
    )


def _with_admin_allow_list(email: str, roles: list[Role]) -> list[Role]:
    if email.lower() in settings.admin_email_list and Role.ADMIN not in roles:
        return [*roles, Role.ADMIN]
    return roles


def _read_bearer_token(request: Request) -> Optional[str]:
    auth = request.headers.get("authorization") or ""
    prefix = "bearer "
    if auth.lower().startswith(prefix):
        return auth[len(prefix) :].strip() or None
    return None


def _load_oauth_client_id() -> Optional[str]:
    if settings.google_client_id:
        return settings.google_client_id
    path = resolve_repo_path(settings.google_oauth_secrets_path)
    if not path.exists():
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    for section in ("web", "installed"):
        if isinstance(data, dict) and isinstance(data.get(section), dict):
            return data[section].get("client_id")
    return None


def _verify_google_id_token(token: str) -> dict:
    client_id = _load_oauth_client_id()
    if not client_id:
        raise InternalError("Missing Google OAuth client_id")
    try:
        req = GoogleAuthRequest(urllib3.PoolManager())
        return google_id_token.verify_oauth2_token(
            token,
            req,
            audience=client_id,
            clock_skew_in_seconds=int(settings.google_clock_skew_seconds),
        )
    except Exception as exc:
        detail = "Invalid session token"
        if settings.environment != "production":
            detail = f"Invalid session token: {exc}"
        raise Unauthorized(detail)


def _derive_name_from_email(email: str) -> str:
    local = email.split("@", 1)[0].strip()
    if not local:
        return email
    parts = [p for p in local.replace("_", ".").split(".") if p]
    if not parts:
        return local
    return " ".join(p[:1].upper() + p[1:] for p in parts)


def require_roles(required: Iterable[Role]):
    required = tuple(required)

    async def dependency(user: UserContext = Depends(get_current_user)) -> UserContext:
        if not has_required_role(user.roles, required):
            raise Forbidden("Insufficient permissions")
        return user

    return dependency


def require_admin():
    return require_roles(ADMIN_ROLES)
