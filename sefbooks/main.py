"""
Main FastAPI application - SEF fakture, izvodi i PPPDV.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sefbooks.api.routers import bank_statements, invoices, pppdv
from sefbooks.core.config import get_settings
from sefbooks.core.exceptions import SefBooksError
from sefbooks.core.logging_config import LogContext, configure_logging, get_logger
from sefbooks.infrastructure.database import init_db

logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan - startup and shutdown events."""
    configure_logging(level=get_settings().log_level)
    init_db()
    yield


app = FastAPI(
    title="SefBooks API",
    description="""
## Fakturisanje, izvodi i PDV (SEF / ePorezi)

### Funkcije:
- **Obračun fakture**: osnovica, PDV i ukupno po stavkama (zaokruživanje na 2 decimale)
- **Povezivanje izvoda**: automatsko i ručno zatvaranje faktura uplatama
- **PPPDV**: obračun, čuvanje, podnošenje i XML za ePorezi

### Pravila:
- Uplata nikad ne premašuje preostali dug fakture
- Jedna transakcija izvoda - najviše jedna uplata
- Podneta PPPDV prijava se ne menja i ne briše
    """,
    version="0.1.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(invoices.router)
app.include_router(bank_statements.router)
app.include_router(pppdv.router)


@app.middleware("http")
async def bind_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    with LogContext.bind(request_id=request_id):
        response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.get("/")
def root():
    return {
        "name": "SefBooks API",
        "version": "0.1.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.exception_handler(SefBooksError)
async def sefbooks_error_handler(request: Request, exc: SefBooksError):
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error("Unhandled engine error", extra={"code": exc.code, "path": request.url.path})
    else:
        logger.info(
            "Request rejected",
            extra={"code": exc.code, "status_code": exc.status_code, "path": request.url.path},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
