import os
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt, JWTError
from sqlmodel import Session, select

from app.db.db import get_session
from app.models.user import User

ALGORITHM = "HS256"

bearer_scheme = HTTPBearer(auto_error=True)


def get_current_user_required(token: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    # Tokens are issued by the identity service, we only verify them
    try:
        return jwt.decode(
            token.credentials,
            os.getenv("JWT_SECRET"),
            algorithms=[ALGORITHM],
        )
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_db_user(session: Session, current_user) -> User:
    user = session.exec(
        select(User).where(User.public_id == current_user["sub"])
    ).first()

    if not user:
        raise HTTPException(status_code=404, detail="User not found")

    return user


def get_acting_user(
    session: Session = Depends(get_session),
    current_user=Depends(get_current_user_required),
) -> User:
    return get_db_user(session, current_user)
