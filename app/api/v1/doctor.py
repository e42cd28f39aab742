import logging

from fastapi import APIRouter

from app.core import config

router = APIRouter()
logger = logging.getLogger("cotacao.doctor")

DEFAULT_SECRET_KEY = "dev-secret-change-me"


@router.get("/doctor")
def doctor():
    settings = config.settings
    ai_ok = bool(settings.OPENAI_API_KEY)
    webhook_ok = bool(settings.WEBHOOK_URL)
    signature_ok = bool(settings.WEBHOOK_SECRET)
    secret_ok = settings.SECRET_KEY != DEFAULT_SECRET_KEY
    cors_ok = bool(settings.BACKEND_CORS_ORIGINS)

    overall = all([ai_ok, webhook_ok, signature_ok, secret_ok, cors_ok])
    if not overall:
        logger.warning("doctor: configuracao incompleta")
    return {
        "status": "OK" if overall else "WARN",
        "ai_provider": "OK" if ai_ok else "ERROR",
        "webhook": "OK" if webhook_ok else "ERROR",
        "webhook_signature": "OK" if signature_ok else "ERROR",
        "secret_key": "OK" if secret_ok else "ERROR",
        "cors": "OK" if cors_ok else "ERROR",
    }
