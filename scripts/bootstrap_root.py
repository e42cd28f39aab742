import os

from app.db import models
from app.db.init_db import ensure_root_user
from app.db.session import SessionLocal, engine


def main() -> None:
    email = os.getenv("ROOT_EMAIL")
    password = os.getenv("ROOT_PASSWORD")
    if not email or not password:
        raise SystemExit("ROOT_EMAIL/ROOT_PASSWORD nao definidos.")

    models.Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        root = ensure_root_user(db, email, password, os.getenv("ROOT_NAME"))
        print(f"Root ACTIVE: {root.email}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
