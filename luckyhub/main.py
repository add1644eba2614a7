import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from luckyhub.api.account import router as account_router
from luckyhub.api.admin import router as admin_router
from luckyhub.api.auth import router as auth_router
from luckyhub.api.chat import router as chat_router
from luckyhub.api.metrics import router as metrics_router
from luckyhub.core.bootstrap import ensure_default_groups_and_bot
from luckyhub.db.session import SessionLocal, create_tables

app = FastAPI(title="LuckyHub Coach API")
logger = logging.getLogger("uvicorn.error")

# The browser frontend is served from a separate origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    create_tables()
    db = SessionLocal()
    try:
        ensure_default_groups_and_bot(db)
    finally:
        db.close()


@app.exception_handler(SQLAlchemyError)
def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("database_error path=%s detail=%s", request.url.path, str(exc)[:500])
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(auth_router)
app.include_router(metrics_router)
app.include_router(chat_router)
app.include_router(account_router)
app.include_router(admin_router)
