from datetime import timedelta, datetime, timezone
from typing import Optional, Annotated
from fastapi.security import OAuth2PasswordBearer
import jwt
from jwt.exceptions import InvalidTokenError
from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session
from .database import get_db
from . import models, schemas
from .config import settings
from .lifecycle.complaint import Actor, normalize_role
from .lifecycle.errors import ValidationError

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="login")


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.access_token_expiration_minutes
        )
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(
        to_encode, settings.secret_key, algorithm=settings.algorithm
    )
    return encoded_jwt


def get_user(email: str, db: Session) -> Optional[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.email == email)
        .filter(models.User.is_active.is_(True))
        .first()
    )


def get_current_actor(
    token: Annotated[str, Depends(oauth2_scheme)], db: Session = Depends(get_db)
) -> Actor:
    credential_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token, settings.secret_key, algorithms=[settings.algorithm]
        )
        email: str = payload.get("sub")
        if email is None:
            raise credential_exception
        token_data: schemas.TokenData = schemas.TokenData(email=email)
    except InvalidTokenError:
        raise credential_exception

    user = get_user(email=token_data.email, db=db)
    if user is None:
        raise credential_exception

    try:
        role = normalize_role(user.role)
    except ValidationError:
        raise credential_exception
    return Actor(id=user.id, role=role, department=user.department)
