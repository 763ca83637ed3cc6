"""Administrator accounts with salted password hashes."""
from __future__ import annotations

import logging
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .errors import ValidationError
from .models import AdminUser

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def get_admin_user(session: Session, username: str) -> Optional[AdminUser]:
    return session.scalar(select(AdminUser).where(AdminUser.username == username.strip()))


def create_admin_user(session: Session, *, username: str, password: str) -> AdminUser:
    if not username or not username.strip():
        raise ValidationError("username is required")
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    admin = AdminUser(username=username.strip(), password_hash=hash_password(password))
    session.add(admin)
    try:
        session.flush()
    except IntegrityError as exc:
        raise ValidationError(f"admin user '{username}' already exists") from exc
    logger.info("Created admin user %s", admin.username)
    return admin


def set_admin_password(session: Session, admin: AdminUser, password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
    admin.password_hash = hash_password(password)
    session.flush()


def authenticate_admin(session: Session, username: str, password: str) -> bool:
    """Return ``True`` when ``password`` matches the stored hash for ``username``."""

    if not username or not password:
        return False
    admin = get_admin_user(session, username)
    if admin is None:
        pwd_context.dummy_verify()
        logger.info("Rejected login for unknown admin %s", username)
        return False
    verified, new_hash = pwd_context.verify_and_update(password, admin.password_hash)
    if not verified:
        logger.info("Rejected login for admin %s", username)
        return False
    if new_hash:
        admin.password_hash = new_hash
    return True
