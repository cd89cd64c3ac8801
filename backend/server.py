"""
OXA CRM - API Backend
Devis (CEE / standard), clients, articles, commandes, factures

Démarre avec:
    uvicorn server:app --host 0.0.0.0 --port 8001 --reload

Sans MONGO_URL, l'API tourne sur le jeu de démonstration en mémoire.
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from config import CORS_ORIGINS, close_database, is_persistence_configured
from services.cee_calculator import ConfigurationError
from services.devis_totals import TotalsInvariantError
from services.devis_validation import ValidationFailed
from services.persistence import ConflictError, NotFoundError, RemoteError

# Configuration logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("oxa_crm")

GENERIC_REMOTE_ERROR = "Erreur lors de l'enregistrement, veuillez réessayer"

# Créer l'app
app = FastAPI(
    title="OXA CRM",
    description="Devis CEE, commandes et facturation",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ==================== ERREURS MÉTIER ====================

@app.exception_handler(ValidationFailed)
async def validation_failed_handler(request: Request, exc: ValidationFailed):
    return JSONResponse(status_code=422, content={"errors": exc.errors})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "current_revision": exc.current}
    )


@app.exception_handler(RemoteError)
async def remote_error_handler(request: Request, exc: RemoteError):
    logger.error(f"[API] {request.method} {request.url.path} persistence error: {exc}")
    return JSONResponse(status_code=502, content={"detail": str(exc) or GENERIC_REMOTE_ERROR})


@app.exception_handler(TotalsInvariantError)
async def totals_invariant_handler(request: Request, exc: TotalsInvariantError):
    logger.error(f"[API] {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": str(exc)})


# ==================== IMPORT DES ROUTES ====================

from routes import devis, clients, articles, commandes, factures

# Routes avec préfixe /api
app.include_router(devis.router, prefix="/api")
app.include_router(clients.router, prefix="/api")
app.include_router(articles.router, prefix="/api")
app.include_router(commandes.router, prefix="/api")
app.include_router(factures.router, prefix="/api")


# ==================== ROUTE RACINE ====================

@app.get("/")
async def root():
    return {
        "name": "OXA CRM API",
        "version": "1.0.0",
        "status": "running",
        "demo": not is_persistence_configured(),
        "docs": "/docs"
    }


# ==================== STARTUP / SHUTDOWN ====================

@app.on_event("startup")
async def startup():
    if is_persistence_configured():
        logger.info("OXA CRM démarré (MongoDB)")
    else:
        logger.warning("OXA CRM démarré en mode démo: MONGO_URL non configuré")


@app.on_event("shutdown")
async def shutdown_db_client():
    close_database()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
