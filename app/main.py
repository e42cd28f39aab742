import logging
import time

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from app.api.v1.access_logs import router as access_logs_router
from app.api.v1.auth import router as auth_router
from app.api.v1.dashboard import router as dashboard_router
from app.api.v1.doctor import router as doctor_router
from app.api.v1.notifications import router as notifications_router
from app.api.v1.quotations import router as quotations_router
from app.api.v1.tenants import router as tenants_router
from app.api.v1.users import router as users_router
from app.api.v1.webhooks import router as webhooks_router
from app.core.config import settings
from app.core.errors import AuthenticationError, CotacaoError, PersistenceError, ValidationError
from app.db import models
from app.db import session as db_session
from app.db.init_db import seed_root_user
from app.services.access_log import record_api_call

if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("cotacao")

SessionLocal = db_session.SessionLocal

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Cotacao API - Gestao de cotacoes municipais com analise de precos",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    models.Base.metadata.create_all(bind=db_session.engine)
    seed_root_user()
    if settings.ENV.lower() == "production":
        if settings.SECRET_KEY == "dev-secret-change-me":
            logger.warning("SECRET_KEY esta usando valor padrao em producao.")
        if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            logger.warning("SQLALCHEMY_DATABASE_URI aponta para SQLite em producao.")
        if not settings.WEBHOOK_SECRET:
            logger.warning("WEBHOOK_SECRET vazio; webhooks seguirao sem assinatura.")


@app.exception_handler(CotacaoError)
async def handle_domain_error(request: Request, exc: CotacaoError):
    body = {"message": exc.message}
    headers = None
    if isinstance(exc, ValidationError):
        body["errors"] = exc.errors
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(status_code=exc.status_code, content=body, headers=headers)


@app.exception_handler(SQLAlchemyError)
async def handle_database_error(request: Request, exc: SQLAlchemyError):
    logger.exception("Erro de banco de dados path=%s", request.url.path)
    return JSONResponse(status_code=PersistenceError.status_code, content={"message": PersistenceError.message})


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(location) or "body", "message": error.get("msg", "")})
    return JSONResponse(
        status_code=422,
        content=jsonable_encoder({"message": ValidationError.message, "errors": errors}),
    )


app.include_router(auth_router, prefix="/api")
app.include_router(tenants_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(quotations_router, prefix="/api")
app.include_router(access_logs_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(dashboard_router, prefix="/api")
app.include_router(doctor_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    principal_id = getattr(request.state, "principal_id", None)
    if principal_id:
        await run_in_threadpool(
            record_api_call,
            SessionLocal,
            principal_id,
            getattr(request.state, "principal_tenant_id", None),
            request.url.path,
            request.method,
            request.client.host if request.client else None,
            response.status_code,
        )
    return response


@app.get("/api/health")
def health():
    return {"status": "ok"}
