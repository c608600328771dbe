"""
Cria (ou reativa) o primeiro administrador.

  ADMIN_BOOTSTRAP_EMAIL=admin@modcar.com ADMIN_BOOTSTRAP_PASSWORD=... \
      python scripts/bootstrap_admin.py
"""
import os

from modcar import models
from modcar.database import SessionLocal, engine, init_db
from modcar.dependencies import ROLE_ADMIN
from modcar.services.identity import create_identity, normalize_email


def main() -> None:
    email = normalize_email(os.getenv("ADMIN_BOOTSTRAP_EMAIL"))
    password = os.getenv("ADMIN_BOOTSTRAP_PASSWORD")
    if not email or not password:
        raise SystemExit("ADMIN_BOOTSTRAP_EMAIL / ADMIN_BOOTSTRAP_PASSWORD nao definidos.")

    init_db(engine)
    db = SessionLocal()
    try:
        identity = db.query(models.Identity).filter(models.Identity.email == email).first()
        if not identity:
            identity = create_identity(db, email=email, password=password, metadata={"name": "Administrador"})

        role = db.query(models.UserRole).filter(models.UserRole.user_id == identity.id).first()
        if not role:
            db.add(models.UserRole(user_id=identity.id, role=ROLE_ADMIN))
        else:
            role.role = ROLE_ADMIN

        if identity.profile:
            identity.profile.status = "active"
        db.commit()
        print(f"Admin ACTIVE: {identity.email}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
