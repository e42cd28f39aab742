import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.db import models
from app.db.session import SessionLocal
from app.services.principals import create_principal

logger = logging.getLogger("cotacao.seed")


def ensure_root_user(
    db: Session,
    email: str,
    password: str,
    name: Optional[str] = None,
) -> models.User:
    existing = db.query(models.User).filter(models.User.role == models.ROLE_ROOT).first()
    if existing:
        return existing
    return create_principal(
        db,
        None,
        name=name or "Administrador Global",
        email=email,
        password=password,
        role=models.ROLE_ROOT,
    )


def seed_root_user() -> Optional[models.User]:
    if not settings.ROOT_EMAIL or not settings.ROOT_PASSWORD:
        logger.info("ROOT_EMAIL/ROOT_PASSWORD nao definidos; seed do root ignorado")
        return None
    db: Session = SessionLocal()
    try:
        root = ensure_root_user(db, settings.ROOT_EMAIL, settings.ROOT_PASSWORD, settings.ROOT_NAME)
        logger.info("Seed OK: root=%s", root.email)
        return root
    finally:
        db.close()
