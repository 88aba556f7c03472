import logging
import time

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quotehub.api.v1.auth import router as auth_router
from quotehub.api.v1.clients import router as clients_router
from quotehub.api.v1.companies import router as companies_router
from quotehub.api.v1.me import router as me_router
from quotehub.api.v1.products import router as products_router
from quotehub.api.v1.quotes import router as quotes_router
from quotehub.api.v1.shares import router as shares_router
from quotehub.core.config import settings
from quotehub.core.errors import DomainError, InvalidInput
from quotehub.db import models
from quotehub.db.init_db import seed_initial_data
from quotehub.db.session import engine

if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("quotehub")

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="QuoteHub - Orcamentos, clientes e catalogo por empresa",
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
    models.Base.metadata.create_all(bind=engine)
    seed_initial_data()
    if settings.ENV.lower() == "production":
        if settings.SECRET_KEY == "dev-secret-change-me":
            logger.warning("SECRET_KEY esta usando valor padrao em producao.")
        if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            logger.warning("SQLALCHEMY_DATABASE_URI aponta para SQLite em producao.")
    if settings.ADMIN_OVERRIDE_SECRET:
        logger.info("Acesso administrativo por segredo habilitado para %s", settings.ADMIN_USER_EMAIL)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    if exc.status_code >= 500:
        logger.error("Erro interno path=%s code=%s", request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = f"{location}: {first.get('msg')}" if location else InvalidInput.default_message
    body = InvalidInput(message).to_dict()
    body["details"] = exc.errors()
    return JSONResponse(status_code=InvalidInput.status_code, content=jsonable_encoder(body))


app.include_router(auth_router, prefix="/api/v1")
app.include_router(me_router, prefix="/api/v1")
app.include_router(companies_router, prefix="/api/v1")
app.include_router(shares_router, prefix="/api/v1")
app.include_router(clients_router, prefix="/api/v1")
app.include_router(products_router, prefix="/api/v1")
app.include_router(quotes_router, prefix="/api/v1")


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
    return response


@app.get("/api/health")
def health():
    return {"status": "ok"}
