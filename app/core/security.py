# app/core/security.py
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional
import time, jwt
from sqlalchemy.orm import Session
from app.core.config import settings
from passlib.hash import bcrypt_sha256
from app.db.session import get_db
from app.models.user import User, UserRole
from app.services.actors import Actor, actor_from_user

ALGO = "HS256"
ACCESS_TTL = 15 * 60
REFRESH_TTL = 7 * 24 * 3600
bearer = HTTPBearer(auto_error=False)

def hash_password(raw: str) -> str:
    return bcrypt_sha256.hash(raw)

def verify_password(raw: str, hashed: str) -> bool:
    return bcrypt_sha256.verify(raw, hashed)

def _make_token(sub: str, role: str, ttl: int, kind: str) -> str:
    now = int(time.time())
    payload = {"sub": sub, "role": role, "typ": kind, "iat": now, "exp": now + ttl}
    return jwt.encode(payload, settings.jwt_secret, algorithm=ALGO)

def make_tokens(email: str, role: str) -> dict:
    return {
        "access_token": _make_token(email, role, ACCESS_TTL, "access"),
        "refresh_token": _make_token(email, role, REFRESH_TTL, "refresh"),
        "token_type": "bearer",
        "expires_in": ACCESS_TTL,
    }

def decode_token(token: str, kind: str = "access") -> dict:
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[ALGO])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    if payload.get("typ", "access") != kind:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return payload

def user_from_token(db: Session, token: str) -> User:
    payload = decode_token(token)
    email = payload.get("sub")
    if not email:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    user = db.query(User).filter(User.email == email).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="user_inactive")
    return user

def get_current_user(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
                     db: Session = Depends(get_db)) -> User:
    if not creds:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user_from_token(db, creds.credentials)

def get_current_actor(user: User = Depends(get_current_user)) -> Actor:
    return actor_from_user(user)

def require_role(*roles):
    role_values = [r.value if isinstance(r, UserRole) else r for r in roles]
    def _dep(user: User = Depends(get_current_user)):
        if user.role.value not in role_values:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
        return user
    return _dep

require_admin = require_role(UserRole.low_admin, UserRole.high_admin)
require_high_admin = require_role(UserRole.high_admin)
