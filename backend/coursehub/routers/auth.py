# coursehub/routers/auth.py
import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..access import viewer_from_session
from ..database import get_db
from ..errors import Conflict, Unauthorized
from ..models import User, ROLE_STUDENT
from ..schemas import LoginIn, RegisterIn
from ..security import hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Auth"])


def create_user(db: Session, name, email, password, role, **extra) -> User:
    """Insert a user with a unique, lower-cased email. Raises Conflict on duplicates."""
    email = email.strip().lower()
    if db.query(User.id).filter(User.email == email).first():
        raise Conflict("Email already registered")
    user = User(name=name, email=email, password_hash=hash_password(password), role=role, **extra)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("Email already registered")
    db.refresh(user)
    logger.info("Created %s account %s", role, email)
    return user


@router.post("/register")
def register(payload: RegisterIn, request: Request, db: Session = Depends(get_db)):
    # Self-registration only ever creates students
    user = create_user(db, payload.name, payload.email, payload.password, ROLE_STUDENT)
    request.session["user"] = user.session_payload()
    return {"ok": True}


@router.post("/login")
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.strip().lower()).first()
    if not user or not verify_password(payload.password, user.password_hash):
        raise Unauthorized("Invalid credentials")
    request.session["user"] = user.session_payload()
    return {"ok": True}


@router.post("/logout")
def logout(request: Request):
    request.session.clear()
    return {"ok": True}


@router.get("/me")
def me(request: Request):
    viewer = viewer_from_session(request)
    if viewer is None:
        return {"user": None}
    return {"user": {"id": viewer.id, "name": viewer.name, "email": viewer.email, "role": viewer.role}}
