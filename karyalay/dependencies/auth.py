from collections.abc import Callable, Mapping
from enum import Enum
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from karyalay.core.config import get_settings


class Role(str, Enum):
    """Supported roles."""

    ADMIN = "admin"
    SUPPORT = "support"
    CUSTOMER = "customer"


class User:
    """Simple representation of an authenticated user."""

    def __init__(self, user_id: str, roles: tuple[Role, ...]):
        self.user_id = user_id
        self.roles = roles

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def has_any_role(self, *roles: Role) -> bool:
        return any(role in self.roles for role in roles)

    @property
    def is_staff(self) -> bool:
        return self.has_any_role(Role.ADMIN, Role.SUPPORT)


ANONYMOUS = User(user_id="anonymous", roles=())

bearer_scheme = HTTPBearer(auto_error=False)


def parse_token_entry(entry: str) -> tuple[str, tuple[Role, ...]]:
    """Parse a ``user_id:role[,role]`` token mapping entry."""

    user_id, _, role_text = entry.partition(":")
    if not user_id or not role_text:
        raise ValueError(f"Malformed token entry: {entry!r}")
    roles = tuple(Role(part.strip().lower()) for part in role_text.split(",") if part.strip())
    return user_id.strip(), roles


def resolve_user_from_token(token: str | None, token_map: Mapping[str, str] | None = None) -> User:
    """Return a user instance associated with the provided bearer token."""

    if token is None:
        return ANONYMOUS

    tokens = token_map if token_map is not None else get_settings().auth_tokens
    if token not in tokens:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")

    user_id, roles = parse_token_entry(tokens[token])
    return User(user_id=user_id, roles=roles)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> User:
    """Map a static bearer token from settings to a user.

    Requests without credentials are treated as anonymous and fail every role check.
    """

    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    token = credentials.credentials if credentials is not None else None
    user = resolve_user_from_token(token)
    request.state.user = user
    return user


def role_required(*roles: Role) -> Callable[[User], User]:
    """Dependency factory ensuring the current user holds one of the requested roles."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.has_any_role(*roles):
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return dependency


CurrentUser = Annotated[User, Depends(get_current_user)]
