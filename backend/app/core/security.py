# backend/app/core/security.py
# Validation des JWT émis par le fournisseur d'auth externe, dépendances FastAPI `get_current_user` / `require_admin`.

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.bson_utils import PyObjectId, to_object_id
from app.core.settings import get_settings
from app.db.mongodb import get_db
from app.models.user import User
from app.services.user_provisioning import UserProvisioningService

settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Décoder et vérifier un JWT.

    Args:
        token (str): Jeton Bearer.

    Returns:
        dict: Claims.

    Raises:
        HTTPException: 401 si la signature ou l'expiration est invalide.
    """
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    db: Annotated[AsyncIOMotorDatabase, Depends(get_db)],
) -> User:
    """Dépendance FastAPI: charge l'utilisateur courant depuis le JWT.

    Description:
        - `sub` est l'id Mongo de l'utilisateur s'il existe déjà
        - sinon, un claim `email` permet de provisionner l'utilisateur (rôle selon la politique)
        - 401 si le jeton est absent, invalide, ou ne désigne aucun utilisateur

    Returns:
        User: Utilisateur courant.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    payload = decode_token(credentials.credentials)
    sub = payload.get("sub")

    raw_user = None
    user_id = to_object_id(sub)
    if user_id is not None:
        raw_user = await db.users.find_one({"_id": user_id})
    if raw_user is None and isinstance(payload.get("email"), str):
        raw_user = await UserProvisioningService(db).provision(
            payload["email"],
            username=payload.get("username") or payload.get("preferred_username"),
            name=payload.get("name"),
            gender=payload.get("gender") if payload.get("gender") in ("male", "female") else None,
            avatar_url=payload.get("picture"),
        )
    if raw_user is None:
        raise credentials_exception

    return User(**raw_user)


def get_current_user_id(current_user: Annotated[User, Depends(get_current_user)]) -> PyObjectId:
    user_id = current_user.id
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user without id",
        )
    return user_id


def require_admin(current_user: Annotated[User, Depends(get_current_user)]) -> User:
    if current_user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return current_user


# Type aliases pour faciliter l'usage
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentUserId = Annotated[PyObjectId, Depends(get_current_user_id)]
AdminUser = Annotated[User, Depends(require_admin)]
