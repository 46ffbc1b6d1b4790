from typing import Optional

from tibeb.accounts import UserStore
from tibeb.models import Role
from tibeb.shared.utils import verify_token, UnauthorizedException, ForbiddenException


class AccessGate:
    """Classifies a caller as anonymous, an authenticated user, or an admin."""

    def __init__(self, users: UserStore):
        self.users = users

    async def identify(self, authorization: Optional[str]) -> Optional[dict]:
        """None for anonymous callers; the current user record for a valid bearer token."""
        if not authorization:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise UnauthorizedException("Invalid authentication credentials")

        payload = verify_token(token.strip())
        # Reload so role changes and deletions apply to tokens already issued
        user = await self.users.get(payload.get("sub"))
        if not user:
            raise UnauthorizedException("User no longer exists")
        return user

    def require_admin(self, user: dict) -> dict:
        if user.get("role") != Role.ADMIN.value:
            raise ForbiddenException("Admin only")
        return user
