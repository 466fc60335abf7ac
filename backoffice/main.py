from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logfire
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.middleware import SlowAPIMiddleware
from slowapi.errors import RateLimitExceeded
from backoffice.database.database import create_tables, engine
from backoffice.config.config import settings
from backoffice.utils.exceptions import BackofficeError

from backoffice.routes import (
    attendance_routes,
    employee_routes,
    payroll_batch_routes,
    payroll_routes,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    docs_url="/",
    lifespan=lifespan,
    description="HR and payroll back office",
    summary="Employees, attendance, earnings and deductions, payroll batches and payslips",
)


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT],
    enabled=settings.RATE_LIMIT_ENABLED,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(BackofficeError)
async def backoffice_error_handler(request: Request, exc: BackofficeError):
    if exc.status_code >= 500:
        logfire.error("{path} failed: {message}", path=request.url.path, message=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# configure logfire
logfire.configure(token=settings.LOGFIRE_TOKEN, send_to_logfire="if-token-present")
logfire.instrument_sqlalchemy(engine=engine)
logfire.instrument_fastapi(app, capture_headers=True)


# payroll_batch before payroll so "/api/payroll/batch" is never read as a payroll id
app.include_router(employee_routes.router)
app.include_router(attendance_routes.router)
app.include_router(payroll_batch_routes.router)
app.include_router(payroll_routes.router)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)
