"""
PharmIA - API principale
Lancement: uvicorn pharmia.server:app
"""

import logging
from fastapi import FastAPI, APIRouter, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from pharmia.config import CORS_ORIGINS, DB_NAME, ENABLE_SCHEDULER, create_mongo_client
from pharmia.routes import auth, groups, memofiches, orders, subscriptions, webinars
from pharmia.scheduler_service import TaskScheduler
from pharmia.services.errors import PharmiaError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("server")


def create_app(db=None) -> FastAPI:
    """
    Construit l'application.
    db: handle de base déjà prêt (tests); sinon le client Motor est créé au démarrage.
    """
    app = FastAPI(title="PharmIA API")
    app.state.db = db
    app.state.mongo_client = None
    app.state.scheduler = None

    # Create a router with the /api prefix
    api_router = APIRouter(prefix="/api")
    api_router.include_router(auth.router)
    api_router.include_router(memofiches.router)
    api_router.include_router(groups.router)
    api_router.include_router(webinars.router)
    api_router.include_router(orders.router)
    api_router.include_router(subscriptions.router)
    app.include_router(api_router)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PharmiaError)
    async def pharmia_error_handler(request: Request, exc: PharmiaError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception(f"Erreur non gérée sur {request.method} {request.url.path}")
        return JSONResponse(status_code=500, content={"detail": "Erreur interne du serveur"})

    @app.on_event("startup")
    async def startup():
        if app.state.db is None:
            app.state.mongo_client = create_mongo_client()
            app.state.db = app.state.mongo_client[DB_NAME]
            logger.info(f"Connexion MongoDB ouverte sur la base {DB_NAME}")

        if ENABLE_SCHEDULER:
            app.state.scheduler = TaskScheduler(app.state.db)
            app.state.scheduler.start()

    @app.on_event("shutdown")
    async def shutdown():
        if app.state.scheduler:
            app.state.scheduler.stop()
        if app.state.mongo_client:
            app.state.mongo_client.close()

    @app.get("/api/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
