import logging
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.models.user import ROLES, User
from app.schemas.ledger import Actor

logger = logging.getLogger(__name__)

WRITE_ROLES = ("admin", "manager", "staff")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode(), hashed.encode())


def create_access_token(user: User) -> str:
    expires = datetime.now(timezone.utc) + timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS)
    payload = {"sub": user.id, "username": user.username, "role": user.role, "exp": expires}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm="HS256")


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
    except jwt.InvalidTokenError as e:
        logger.debug("Rejected token: %s", e)
        return None


def user_from_token(db: Session, token: str) -> User | None:
    """The active user a token was issued to, or None."""
    payload = decode_token(token)
    if not payload or "sub" not in payload:
        return None
    user = get_user_by_id(db, payload["sub"])
    if not user or not user.active:
        return None
    return user


def authenticate(db: Session, username: str, password: str) -> User | None:
    user = db.query(User).filter(User.username == username, User.active.is_(True)).first()
    if not user or not verify_password(password, user.password_hash):
        logger.warning("Failed login for '%s'", username)
        return None
    logger.info("User %s logged in (%s)", user.username, user.role)
    return user


def get_user_by_id(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def to_actor(user: User) -> Actor:
    """Identity stamped on ledger entries written on this user's behalf."""
    return Actor(username=user.username, role=user.role)


def can_write(actor: Actor) -> bool:
    return actor.role in WRITE_ROLES


def create_user(db: Session, username: str, password: str, display_name: str = "", role: str = "staff") -> User:
    username = username.strip()
    if not username or not password:
        raise ValueError("Username and password are required")
    if role not in ROLES:
        raise ValueError(f"Invalid role '{role}'. Must be one of: {', '.join(ROLES)}")
    if db.query(User).filter(User.username == username).first():
        raise ValueError(f"Username '{username}' already exists")

    user = User(
        username=username,
        display_name=display_name or username,
        password_hash=hash_password(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created %s user %s", role, username)
    return user


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.created_at.desc()).all()


def ensure_default_admin(db: Session) -> None:
    """Create default admin user if no users exist."""
    if db.query(User).count() == 0:
        create_user(db, username="admin", password=settings.DEFAULT_ADMIN_PASSWORD, display_name="Admin", role="admin")
        logger.warning("No users found; created default 'admin' account. Change its password.")
