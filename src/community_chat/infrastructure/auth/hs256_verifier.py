from __future__ import annotations

import jwt

from community_chat.application.dto.principal import Principal
from community_chat.domain.value_objects.enums import UserRole
from community_chat.domain.value_objects.ids import UserId

ACCESS_TOKEN_TYPE = "access"


class HS256Verifier:
    """Verify access tokens signed with a shared HS256 secret."""

    def __init__(self, secret: str, algorithm: str = "HS256") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> Principal:
        payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])

        token_type = payload.get("token_type")
        if token_type is not None and token_type != ACCESS_TOKEN_TYPE:
            raise jwt.InvalidTokenError(f"expected an access token, got {token_type!r}")

        raw_id = payload.get("user_id", payload.get("sub"))
        if raw_id is None:
            raise jwt.InvalidTokenError("token carries no user id")
        try:
            user_id = int(raw_id)
        except (TypeError, ValueError) as exc:
            raise jwt.InvalidTokenError(f"invalid user id {raw_id!r}") from exc

        role = UserRole.ADMIN if payload.get("role") == UserRole.ADMIN else UserRole.USER
        return Principal(user_id=UserId(user_id), role=role)
