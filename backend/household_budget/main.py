import logging

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import settings
from .encryption import EncryptionError, validate_encryption
from .errors import ApiError
from .logging_setup import setup_logging
from .persistence import DataStore, get_data_store
from .plaid_client import PlaidClient, PlaidClientProtocol, PlaidError
from .routers import accounts, actuals, auth, autocategorize, budgets, categories, reports, transactions
from .schemas import ApiErrorDetail, HealthResponse
from .services.accounts import plaid_api_error
from .services.auth import AuthService

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details: list[ApiErrorDetail] = []
    for err in exc.errors():
        loc = ".".join(str(item) for item in err.get("loc", []) if item not in ("body", "query", "path"))
        details.append(ApiErrorDetail(field=loc or "body", message=err.get("msg", "validation error")))
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid request data",
            "details": [d.model_dump() for d in details],
        },
    )


async def encryption_error_handler(request: Request, exc: EncryptionError) -> JSONResponse:
    logger.error("encryption failure on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


async def plaid_error_handler(request: Request, exc: PlaidError) -> JSONResponse:
    error = plaid_api_error(exc)
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


async def health() -> HealthResponse:
    return HealthResponse(status="ok", encryption=validate_encryption())


def create_app(store: DataStore | None = None, plaid_client: PlaidClientProtocol | None = None) -> FastAPI:
    setup_logging()
    app = FastAPI(
        title=f"{settings.app_name} API",
        version="0.1.0",
        description="Household budgeting API: Plaid-linked transactions, categories, budgets and reports.",
    )
    app.state.store = store if store is not None else get_data_store()
    app.state.plaid = plaid_client if plaid_client is not None else PlaidClient()
    app.state.auth = AuthService(app.state.store)

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(EncryptionError, encryption_error_handler)
    app.add_exception_handler(PlaidError, plaid_error_handler)

    api = APIRouter(prefix=API_PREFIX)
    api.add_api_route("/health", health, methods=["GET"], response_model=HealthResponse)
    for module in (auth, transactions, autocategorize, categories, budgets, actuals, reports, accounts):
        api.include_router(module.router)
    app.include_router(api)

    logger.info("%s started with %s storage", settings.app_name, type(app.state.store).__name__)
    return app


app = create_app()


def run() -> None:
    uvicorn.run("household_budget.main:app", host=settings.host, port=settings.port)
