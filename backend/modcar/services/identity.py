from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from modcar import models
from modcar.config import settings

logger = logging.getLogger("modcar.identity")

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class IdentityError(Exception):
    pass


class DuplicateIdentityError(IdentityError):
    pass


class InvalidCredentialsError(IdentityError):
    pass


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def get_password_hash(password: str) -> str:
    if len(password.encode("utf-8")) > 72:
        raise IdentityError("Senha maior que 72 bytes.")
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


# ============================================================
# CRIAÇÃO / REMOÇÃO
# ============================================================
def create_identity(
    db: Session,
    *,
    email: str,
    password: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> models.Identity:
    """
    Cria a identidade de login e o perfil vazio correspondente
    (mesmo comportamento do hook de "novo usuário" do provedor).
    """
    email = normalize_email(email)
    if not email:
        raise IdentityError("email é obrigatório")

    if db.query(models.Identity).filter(models.Identity.email == email).first():
        raise DuplicateIdentityError("Já existe um usuário registrado com este email")

    metadata = metadata or {}
    identity = models.Identity(email=email, password_hash=get_password_hash(password))
    identity.profile = models.Profile(
        email=email,
        name=metadata.get("name"),
        company=metadata.get("company"),
        status="active",
    )

    db.add(identity)
    db.commit()
    db.refresh(identity)
    logger.info("identity created id=%s", identity.id)
    return identity


def delete_identity(db: Session, identity_id: str) -> bool:
    identity = db.get(models.Identity, identity_id)
    if not identity:
        return False
    db.delete(identity)
    db.commit()
    logger.info("identity deleted id=%s", identity_id)
    return True


# ============================================================
# LOGIN / TOKEN
# ============================================================
def authenticate(db: Session, email: str, password: str) -> models.Identity:
    identity = (
        db.query(models.Identity)
        .filter(models.Identity.email == normalize_email(email))
        .first()
    )
    if not identity or not verify_password(password, identity.password_hash):
        raise InvalidCredentialsError("Email ou senha inválidos")
    return identity


def record_access(db: Session, identity: models.Identity) -> None:
    if identity.profile:
        identity.profile.last_access_at = models.utcnow()
        db.add(identity.profile)
        db.commit()


def issue_token(identity: models.Identity, expires_delta: Optional[timedelta] = None) -> str:
    expire = models.utcnow() + (expires_delta or timedelta(hours=settings.ACCESS_TOKEN_EXPIRE_HOURS))
    payload = {"sub": identity.id, "email": identity.email, "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as exc:
        raise InvalidCredentialsError("Token inválido") from exc
    if not payload.get("sub"):
        raise InvalidCredentialsError("Token inválido")
    return payload
