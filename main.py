import uvicorn
import models.models  # noqa: F401  registers the tables on Base.metadata
from database import engine, Base
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError
from web.routes import router as web_router
from core.config import settings
from core.exceptions import NotFoundError, ValidationError
from core.logger import get_logger

logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("=== SpendAI API starting ===")
    Base.metadata.create_all(bind=engine)
    logger.info("Environment: %s", settings.ENV)
    logger.info("Database: connected, tables ready")
    yield
    logger.info("=== SpendAI API shutting down ===")


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(SQLAlchemyError)
    async def store_error_handler(request: Request, exc: SQLAlchemyError):
        logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Database error"})


def create_app() -> FastAPI:
    """
    Build the SpendAI application: transactions, anomaly analysis, spending policies and coaching.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        description="Expense tracking with anomaly detection and spending policy checks.",
        version="1.0.0",
        lifespan=lifespan
    )

    register_error_handlers(app)
    app.include_router(web_router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
