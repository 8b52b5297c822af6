# jurisdiction/dependencies/auth.py
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from jurisdiction.auth.auth import ClaimsDecoder, claims_decoder
from jurisdiction.exceptions import UnauthorizedError
from jurisdiction.models.user import Principal
from jurisdiction.services.container import ServiceContainer

bearer_scheme = HTTPBearer(auto_error=False)


def get_claims_decoder() -> ClaimsDecoder:
    return claims_decoder


async def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    decoder: ClaimsDecoder = Depends(get_claims_decoder),
) -> Principal:
    """
    Dependency that verifies the bearer token and returns the caller's claims.
    Raises UnauthorizedError when the token is missing or invalid.
    """
    if credentials is None:
        raise UnauthorizedError("Not authenticated")
    return decoder.principal(credentials.credentials)


def get_services(request: Request) -> ServiceContainer:
    """The container built during application startup."""
    return request.app.state.services
