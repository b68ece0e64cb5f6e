# incomesplit/main.py
import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from incomesplit.core.config import settings
from incomesplit.core.log import configure_logging
from incomesplit.api.v1.api import api_router as api_router_v1

configure_logging(settings.LOG_LEVEL, json_logs=settings.is_production)
logger = structlog.get_logger(__name__)

# Ошибки pydantic, означающие, что значение не удалось разобрать (а не что оно вне допустимого диапазона)
PARSE_ERROR_TYPES = {
    "uuid_parsing",
    "uuid_type",
    "float_parsing",
    "float_type",
    "int_parsing",
    "datetime_parsing",
    "datetime_from_date_parsing",
    "datetime_type",
    "date_parsing",
    "date_from_datetime_parsing",
    "json_invalid",
}

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json" # URL для OpenAPI схемы
)


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(error.get("type") in PARSE_ERROR_TYPES for error in errors):
        msg = "Invalid data format"
    else:
        msg = "Validation Error"
    logger.info("request_rejected", method=request.method, path=request.url.path, reason=msg)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "msg": msg,
            "errors": [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
                for error in errors
            ],
        },
    )


app.include_router(api_router_v1, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME}"}
