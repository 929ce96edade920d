"""
Customer accounts: registration, login sessions and password resets.

Reset links are signed, timed tokens. Each one carries a fingerprint of
the password hash it was issued against, so the first successful reset
voids every other outstanding link.
"""

import hashlib
import logging
import secrets
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from itsdangerous import BadSignature, URLSafeTimedSerializer
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from .config import Config
from .database import UserDB, UserRole
from .errors import AuthenticationError, PasswordResetError, RegistrationError
from .notifications import Notifier, send_password_reset_link
from .schemas import RegisterRequest

logger = logging.getLogger(__name__)

RESET_SALT = "password-reset-salt"


# =============================================================================
# Sessions
# =============================================================================

class SessionStore:
    """Login sessions held in process memory: token -> (user id, expiry)."""

    def __init__(self, ttl: timedelta = None):
        self.ttl = ttl if ttl is not None else timedelta(seconds=Config.SESSION_TTL_SECONDS)
        self._sessions: Dict[str, Tuple[int, datetime]] = {}
        self._lock = threading.Lock()

    def _prune(self, now: datetime):
        expired = [token for token, (_, expires_at) in self._sessions.items() if expires_at <= now]
        for token in expired:
            del self._sessions[token]

    def create(self, user_id: int) -> str:
        token = secrets.token_urlsafe(32)
        now = datetime.utcnow()
        with self._lock:
            self._prune(now)
            self._sessions[token] = (user_id, now + self.ttl)
        return token

    def user_id(self, token: str) -> Optional[int]:
        with self._lock:
            self._prune(datetime.utcnow())
            entry = self._sessions.get(token)
        return entry[0] if entry else None

    def invalidate(self, token: str) -> bool:
        with self._lock:
            return self._sessions.pop(token, None) is not None

    def invalidate_user(self, user_id: int) -> int:
        with self._lock:
            tokens = [token for token, (owner, _) in self._sessions.items() if owner == user_id]
            for token in tokens:
                del self._sessions[token]
        return len(tokens)

    def __len__(self):
        with self._lock:
            return len(self._sessions)

    def clear(self):
        with self._lock:
            self._sessions.clear()


sessions = SessionStore()


# =============================================================================
# Reset tokens
# =============================================================================

def _reset_serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(Config.SECRET_KEY, salt=RESET_SALT)


def _password_fingerprint(user: UserDB) -> str:
    return hashlib.sha256(user.password_hash.encode()).hexdigest()[:16]


def generate_reset_token(user: UserDB) -> str:
    return _reset_serializer().dumps([user.email, _password_fingerprint(user)])


def verify_reset_token(db: Session, token: str) -> Optional[UserDB]:
    """The user a reset token was issued to, or None if it is forged, expired or used."""
    try:
        email, fingerprint = _reset_serializer().loads(token, max_age=Config.RESET_TOKEN_MAX_AGE_SECONDS)
    except BadSignature as e:
        logger.warning(f"Rejected reset token: {e}")
        return None
    user = db.query(UserDB).filter(UserDB.email == email).first()
    if user is None or fingerprint != _password_fingerprint(user):
        return None
    return user


# =============================================================================
# Operations
# =============================================================================

def register_user(db: Session, request: RegisterRequest, role: UserRole = UserRole.CUSTOMER) -> UserDB:
    if request.password != request.confirm_password:
        raise RegistrationError("Passwords do not match")
    if db.query(UserDB).filter(UserDB.login == request.login).count():
        raise RegistrationError("Login already taken")
    if db.query(UserDB).filter(UserDB.email == request.email).count():
        raise RegistrationError("Email already registered")

    user = UserDB(
        first_name=request.first_name,
        last_name=request.last_name,
        email=request.email,
        phone_number=request.phone_number,
        login=request.login,
        password_hash=generate_password_hash(request.password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"User registered: {user.login} ({user.role.value})")
    return user


def login(db: Session, login_name: str, password: str) -> Tuple[str, UserDB]:
    """Check credentials and open a session. Returns (token, user)."""
    user = db.query(UserDB).filter(UserDB.login == login_name).first()
    if user is None:
        raise AuthenticationError("User not found")
    if not check_password_hash(user.password_hash, password):
        raise AuthenticationError("Invalid password")
    token = sessions.create(user.id)
    logger.info(f"User logged in: {user.login}")
    return token, user


def logout(token: str) -> bool:
    return sessions.invalidate(token)


def user_for_token(db: Session, token: str) -> Optional[UserDB]:
    user_id = sessions.user_id(token)
    if user_id is None:
        return None
    return db.query(UserDB).filter(UserDB.id == user_id).first()


def request_password_reset(db: Session, email: str, notifier: Notifier = None) -> str:
    user = db.query(UserDB).filter(UserDB.email == email).first()
    if user is None:
        raise PasswordResetError("Email address not found. Enter a correct email address.")
    token = generate_reset_token(user)
    send_password_reset_link(email, token, notifier)
    logger.info(f"Password reset requested for {email}")
    return token


def reset_password(db: Session, token: str, password: str, confirm_password: str) -> UserDB:
    if password != confirm_password:
        raise PasswordResetError("Passwords do not match")
    user = verify_reset_token(db, token)
    if user is None:
        raise PasswordResetError("Reset link is invalid or has expired")

    user.password_hash = generate_password_hash(password)
    db.commit()
    revoked = sessions.invalidate_user(user.id)
    logger.info(f"Password reset for {user.login}, {revoked} session(s) signed out")
    return user


def ensure_admin(db: Session) -> Optional[UserDB]:
    """Create the configured staff account unless it already exists."""
    admin = db.query(UserDB).filter(UserDB.login == Config.ADMIN_LOGIN).first()
    if admin is not None:
        return admin
    owner = db.query(UserDB).filter(UserDB.email == Config.ADMIN_EMAIL).first()
    if owner is not None:
        logger.warning(
            f"Admin account {Config.ADMIN_LOGIN} not created: {Config.ADMIN_EMAIL} belongs to {owner.login}"
        )
        return None
    return register_user(
        db,
        RegisterRequest(
            first_name="Fleet",
            last_name="Manager",
            email=Config.ADMIN_EMAIL,
            login=Config.ADMIN_LOGIN,
            password=Config.ADMIN_PASSWORD,
            confirm_password=Config.ADMIN_PASSWORD,
        ),
        role=UserRole.ADMIN,
    )
