from typing import Annotated

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.access.models import UserProfile
from app.access.users import UserService

bearer_scheme = HTTPBearer(auto_error=False)


async def get_user_service(request: Request) -> UserService:
    service = getattr(request.app.state, "user_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="User service is not configured")
    return service


async def get_current_actor(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    users: Annotated[UserService, Depends(get_user_service)],
) -> UserProfile:
    """Resolve the acting user's profile.

    Authentication happens upstream; the bearer token carries the user id.
    Inactive profiles are returned as-is so the permission engine can deny them.
    """

    if credentials is None or not credentials.credentials.strip():
        raise HTTPException(status_code=401, detail="Authentication required")

    profile = await users.get_profile(credentials.credentials.strip())
    if profile is None:
        raise HTTPException(status_code=401, detail="Invalid authentication credentials")
    return profile


CurrentActor = Annotated[UserProfile, Depends(get_current_actor)]
UserServiceDep = Annotated[UserService, Depends(get_user_service)]
