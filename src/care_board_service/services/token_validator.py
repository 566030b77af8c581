"""Bearer token verification for lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass, field

from joserfc import jwt
from joserfc.errors import JoseError
from joserfc.jwk import OctKey

from care_board_service.core.exceptions import ServiceError


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of an operation."""

    user_id: str
    roles: tuple[str, ...] = field(default_factory=tuple)


class TokenValidator:
    """
    Verifies identity-issued JWTs and turns them into an Actor.

    Tokens are HS256-signed with the secret shared with the identity
    service. ``sub`` is required; ``exp`` is enforced when present; an
    optional ``roles`` claim must be a list of strings.
    """

    def __init__(self, secret: str, algorithm: str) -> None:
        self._key = OctKey.import_key(secret)
        self._algorithm = algorithm
        self._claims_registry = jwt.JWTClaimsRegistry(sub={"essential": True})

    def authenticate(self, token: str) -> Actor:
        """
        Verify a bearer token and return the actor it names.

        Raises:
            ServiceError: INVALID_TOKEN if the token is malformed, badly
                signed, expired, or has no usable ``sub`` claim.
        """
        if not token:
            raise ServiceError("INVALID_TOKEN", "Bearer token must not be empty", 401, {})

        try:
            decoded = jwt.decode(token, self._key, algorithms=[self._algorithm])
            self._claims_registry.validate(decoded.claims)
        except (JoseError, ValueError) as exc:
            raise ServiceError(
                "INVALID_TOKEN",
                "Bearer token is invalid or expired",
                401,
                {},
            ) from exc

        claims = decoded.claims
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise ServiceError("INVALID_TOKEN", "Token subject must be a non-empty string", 401, {})

        raw_roles = claims.get("roles", [])
        if not isinstance(raw_roles, list) or any(not isinstance(r, str) for r in raw_roles):
            raise ServiceError("INVALID_TOKEN", "Token roles must be a list of strings", 401, {})

        return Actor(user_id=subject, roles=tuple(raw_roles))
