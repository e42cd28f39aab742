import logging
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.db import models

logger = logging.getLogger("cotacao.audit")


def access_status(status_code: int) -> str:
    return models.ACCESS_FAILURE if status_code >= 400 else models.ACCESS_SUCCESS


def record_api_call(
    session_factory: Callable[[], Session],
    principal_id: str,
    tenant_id: Optional[str],
    endpoint: str,
    method: str,
    client_ip: Optional[str],
    status_code: int,
) -> Optional[models.AccessLog]:
    """
    Grava um AccessLog depois que o status da resposta e conhecido.
    Chamado uma vez por requisicao autenticada; falhas sao apenas registradas no log.
    """
    db = session_factory()
    try:
        # principal may have been deleted by the request itself
        if not db.query(models.User.id).filter(models.User.id == principal_id).first():
            return None
        entry = models.AccessLog(
            user_id=principal_id,
            tenant_id=tenant_id,
            endpoint=endpoint[:255],
            http_method=method[:10],
            client_ip=(client_ip or "unknown")[:45],
            status=access_status(status_code),
        )
        db.add(entry)
        db.commit()
        db.refresh(entry)
        return entry
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Falha ao gravar access log endpoint=%s", endpoint)
        return None
    finally:
        db.close()
