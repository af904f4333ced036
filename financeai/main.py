from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
import logging

from financeai.core.config import get_settings
from financeai.core.database import engine, Base, AsyncSessionLocal
from financeai.core.llm import LLMConfigurationError, create_llm_service
from financeai.core.logging_config import setup_logging
from financeai.core.resilience import RetryPolicy

from financeai.features.transactions.router import router as transactions_router
from financeai.features.budgets.router import router as budgets_router
from financeai.features.goals.router import router as goals_router
from financeai.features.chat.router import router as chat_router
from financeai.features.reports.router import router as reports_router
from financeai.features.imports.router import router as imports_router
from financeai.features.savings.router import router as savings_router
from financeai.features.debt.router import router as debt_router
from financeai.features.emergency_fund.router import router as emergency_fund_router
from financeai.features.forecasting.router import router as forecasting_router

from financeai.features.chat.service import AIChatService
from financeai.features.chat.store import create_conversation_store
from financeai.features.reports.service import AIReportService
from financeai.features.imports.service import AIImportService

setup_logging()
logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Database Table Creation
    logger.info(f"Environment: {settings.ENVIRONMENT}. Ensuring tables...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # AI services share one client; a missing API key aborts startup
    try:
        llm = create_llm_service(settings)
    except LLMConfigurationError as e:
        logger.critical(f"LLM configuration error: {e}")
        raise

    policy = RetryPolicy.from_settings(settings)
    app.state.chat_service = AIChatService(llm, create_conversation_store(settings, AsyncSessionLocal), policy)
    app.state.report_service = AIReportService(llm, policy)
    app.state.import_service = AIImportService(llm, RetryPolicy.from_settings(settings, jitter=1.0))

    yield

    await engine.dispose()


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LLMConfigurationError)
async def llm_configuration_exception_handler(request: Request, exc: LLMConfigurationError):
    logger.error(f"AI configuration error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "AI service configuration error"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=422,
        content={"detail": jsonable_encoder(exc.errors())},
    )


app.include_router(transactions_router, prefix=f"{settings.API_V1_STR}/transactions", tags=["transactions"])
app.include_router(budgets_router, prefix=f"{settings.API_V1_STR}/budgets", tags=["budgets"])
app.include_router(goals_router, prefix=f"{settings.API_V1_STR}/goals", tags=["goals"])
app.include_router(chat_router, prefix=f"{settings.API_V1_STR}/chat", tags=["chat"])
app.include_router(reports_router, prefix=f"{settings.API_V1_STR}/reports", tags=["reports"])
app.include_router(imports_router, prefix=f"{settings.API_V1_STR}/imports", tags=["imports"])
app.include_router(savings_router, prefix=f"{settings.API_V1_STR}/savings", tags=["savings"])
app.include_router(debt_router, prefix=f"{settings.API_V1_STR}/debt", tags=["debt"])
app.include_router(emergency_fund_router, prefix=f"{settings.API_V1_STR}/emergency-fund", tags=["emergency-fund"])
app.include_router(forecasting_router, prefix=f"{settings.API_V1_STR}/forecasting", tags=["forecasting"])


@app.get("/", tags=["status"])
async def root():
    return {
        "app": settings.PROJECT_NAME,
        "status": "Operational",
        "environment": settings.ENVIRONMENT,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("financeai.main:app", host="0.0.0.0", port=8000, reload=settings.ENVIRONMENT == "local")
