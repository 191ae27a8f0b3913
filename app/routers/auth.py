# File: app/routers/auth.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.ratelimit import limiter
from app.core.security import decode_token, get_current_user, hash_password, make_tokens, verify_password
from app.db.session import get_db
from app.models.user import User, UserRole
from app.routers.users import user_out
from app.schemas.auth import LoginIn, ProfileIn, RefreshIn, RegisterIn, TokenPair
from app.schemas.user import UserOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", response_model=TokenPair, status_code=201)
@limiter.limit("5/minute")
def register(request: Request, body: RegisterIn, db: Session = Depends(get_db)):
    email = body.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=400, detail="Email already registered")

    # self-registration always yields a citizen; staff are created by a high admin
    user = User(
        email=email,
        name=body.name.strip(),
        hashed_password=hash_password(body.password),
        role=UserRole.citizen,
        phone=body.phone,
        is_active=True,
    )
    db.add(user)
    db.commit()
    logger.info("registered citizen %s", user.id)
    return make_tokens(user.email, user.role.value)


@router.post("/login", response_model=TokenPair)
@limiter.limit("10/minute")
def login(request: Request, body: LoginIn, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == body.email.strip().lower()).first()
    if not user or not user.hashed_password:
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Your account has been deactivated. Please contact support.")
    user.last_login = utcnow()
    db.commit()
    return make_tokens(user.email, user.role.value)


@router.post("/refresh", response_model=TokenPair)
def refresh(body: RefreshIn, db: Session = Depends(get_db)):
    payload = decode_token(body.refresh_token, kind="refresh")
    user = db.query(User).filter(User.email == payload.get("sub")).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=403, detail="user_inactive")
    return make_tokens(user.email, user.role.value)


@router.get("/me", response_model=UserOut)
def me(current: User = Depends(get_current_user)):
    return user_out(current)


@router.put("/profile", response_model=UserOut)
def update_profile(body: ProfileIn, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    user.name = body.name.strip()
    user.phone = (body.phone or "").strip() or None
    db.commit()
    db.refresh(user)
    return user_out(user)
