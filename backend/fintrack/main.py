from fastapi import FastAPI, APIRouter, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import logging
from fintrack.config import settings
from prometheus_fastapi_instrumentator import Instrumentator
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from fintrack.api import categorize, expenses, insights, transactions
from fintrack.api.limits import limiter
from fintrack.exceptions import ExternalModelError, FinTrackError, NotFoundError, ValidationError

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Starting Personal Finance API")
    from fintrack.database.connection import init_db
    init_db(settings.DATABASE_URL)

    yield

    logger.info("Shutting down...")
    from fintrack.database.connection import close_db
    close_db()


app = FastAPI(
    title="Personal Finance API",
    description="Expense tracking, spending analytics and AI enrichment",
    version="1.0.0",
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


def _error_response(status_code: int, exc: FinTrackError) -> JSONResponse:
    content = {"error": exc.message}
    field = getattr(exc, "field", None)
    if field:
        content["field"] = field
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    error = ValidationError(location[-1] if location else None, first.get("msg", "Invalid request"))
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, error)


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(ExternalModelError)
async def external_model_error_handler(request: Request, exc: ExternalModelError):
    return _error_response(status.HTTP_502_BAD_GATEWAY, exc)


api_router = APIRouter(prefix="/api")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_router.include_router(expenses.router)
api_router.include_router(transactions.router)
api_router.include_router(insights.router)
api_router.include_router(categorize.router)

app.include_router(api_router)

# Initialize Prometheus metrics instrumentation
Instrumentator().instrument(app).expose(app)


@app.get("/")
async def root():
    return {
        "message": "Personal Finance API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fintrack.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True
    )
