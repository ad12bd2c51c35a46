"""
Validation of the OpenID Connect token Cloud Tasks attaches to push requests.

https://developers.google.com/identity/protocols/oauth2/openid-connect#validatinganidtoken
"""

from __future__ import annotations

import time
from typing import Callable, Iterable, Optional, Protocol

from cloud_tasks.exceptions import UnauthorizedError
from cloud_tasks.handler.service.openid import TokenDecodeError
from cloud_tasks.models.dto import ConnectionConfig, DecodedToken
from shared.utils import get_logger

logger = get_logger(__name__)

GOOGLE_ISSUERS = frozenset({"https://accounts.google.com", "accounts.google.com"})
EMULATOR_ISSUERS = frozenset({"http://localhost:8980"})


class TokenDecoder(Protocol):
    async def decode(self, token: str) -> DecodedToken:
        ...


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class TokenVerifier:
    def __init__(
        self,
        decoder: TokenDecoder,
        *,
        allowed_issuers: Iterable[str] = GOOGLE_ISSUERS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._decoder = decoder
        self._allowed_issuers = frozenset(allowed_issuers)
        self._clock = clock

    @classmethod
    def for_mode(cls, decoder: TokenDecoder, *, emulated: bool, clock: Callable[[], float] = time.time) -> "TokenVerifier":
        issuers = EMULATOR_ISSUERS if emulated else GOOGLE_ISSUERS
        return cls(decoder, allowed_issuers=issuers, clock=clock)

    async def verify(self, authorization: Optional[str], connection: ConnectionConfig) -> DecodedToken:
        if authorization is None:
            raise self._reject("Missing [Authorization] header")

        token = extract_bearer_token(authorization)
        if token is None:
            raise self._reject("Authorization header is not a bearer token")

        try:
            decoded = await self._decoder.decode(token)
        except TokenDecodeError as e:
            raise self._reject(str(e)) from e

        self.validate(decoded, connection)
        return decoded

    def validate(self, token: DecodedToken, connection: ConnectionConfig) -> None:
        if token.iss not in self._allowed_issuers:
            raise self._reject("Issuer is not allowed", issuer=token.iss)

        if token.aud != connection.handler:
            raise self._reject("Audience does not match handler", audience=token.aud)

        if token.exp < self._clock():
            raise self._reject("Token has expired", exp=token.exp)

    @staticmethod
    def _reject(reason: str, **details) -> UnauthorizedError:
        logger.warning("Rejected task request", reason=reason, **details)
        return UnauthorizedError(reason)
