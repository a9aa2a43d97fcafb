import logging
import time
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .accounts import AccountService
from .auth import PasswordHasher, TokenService
from .config import Settings, get_settings
from .db import check_db_connection, get_db, init_db
from .directory import UserDirectory
from .errors import AccountError, InvalidToken, ValidationError
from .notifications import BackgroundNotifier, Mailer, build_mailer
from .schemas import (
    AuthResponse,
    LoginRequest,
    PasswordResetConfirm,
    PasswordResetRequest,
    SignupRequest,
    UpdateUserRequest,
    UserResponse,
)
from .utils.event_logger import configure_logging

logger = logging.getLogger(__name__)

SERVICE_NAME = "Account Service"
SERVICE_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Configure logging and create tables on startup"""
    configure_logging(get_settings())
    init_db()
    yield


app = FastAPI(
    title=SERVICE_NAME,
    description="Login, signup, token refresh and password reset",
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s %s %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


# ---------------- Error rendering ----------------

def error_body(exc: AccountError, settings: Settings) -> dict:
    body = {"error": exc.message, "statusCode": exc.status_code}
    if isinstance(exc, ValidationError) and not settings.is_production:
        body["validationErrors"] = exc.errors
    return body


@app.exception_handler(AccountError)
async def account_error_handler(request: Request, exc: AccountError):
    logger.log(
        exc.log_level,
        "%s %s failed: %s %s%s",
        request.method,
        request.url.path,
        type(exc).__name__,
        exc.message,
        f" {exc.errors}" if isinstance(exc, ValidationError) else "",
    )
    return JSONResponse(status_code=exc.status_code, content=error_body(exc, get_settings()))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return await account_error_handler(request, ValidationError(errors=details))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Unexpected error", "statusCode": 500},
    )


# ---------------- Dependencies ----------------

def get_password_hasher(settings: Settings = Depends(get_settings)) -> PasswordHasher:
    return PasswordHasher(rounds=settings.BCRYPT_ROUNDS)


def get_token_service(settings: Settings = Depends(get_settings)) -> TokenService:
    return TokenService(
        secret_key=settings.SECRET_KEY,
        session_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def get_mailer(settings: Settings = Depends(get_settings)) -> Mailer:
    return build_mailer(settings)


def get_account_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenService = Depends(get_token_service),
    mailer: Mailer = Depends(get_mailer),
) -> AccountService:
    return AccountService(
        directory=UserDirectory(db),
        hasher=hasher,
        tokens=tokens,
        notifier=BackgroundNotifier(background_tasks, mailer, settings.PASSWORD_RESET_URL),
        default_role=settings.DEFAULT_ROLE,
    )


def get_current_user_id(
    tokens: TokenService = Depends(get_token_service),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> int:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise InvalidToken()
    return tokens.verify_session(authorization.split(" ", 1)[1].strip())


# ---------------- Routes ----------------

@app.get("/")
def root():
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "running",
        "database": "ok" if check_db_connection() else "unavailable",
    }


@app.post("/user/login", response_model=AuthResponse)
def login(credentials: LoginRequest, accounts: AccountService = Depends(get_account_service)):
    return accounts.login(credentials.email, credentials.password)


@app.post("/user/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def signup(payload: SignupRequest, accounts: AccountService = Depends(get_account_service)):
    address = payload.address.model_dump(exclude_none=True) if payload.address else None
    return accounts.signup(
        email=payload.email,
        password=payload.password,
        full_name=payload.name,
        phone=payload.phone,
        address=address,
    )


@app.post("/user/refreshToken", response_model=AuthResponse)
def refresh_token(
    user_id: int = Depends(get_current_user_id),
    accounts: AccountService = Depends(get_account_service),
):
    return accounts.refresh(user_id)


@app.put("/user", response_model=UserResponse, status_code=status.HTTP_202_ACCEPTED)
def update_user(
    payload: UpdateUserRequest,
    user_id: int = Depends(get_current_user_id),
    accounts: AccountService = Depends(get_account_service),
):
    user = accounts.change_password(user_id, payload.name, payload.current_password, payload.new_password)
    return {"user": user.to_public_dict()}


# ---------------- Password Reset Flow ----------------

@app.post("/user/resetPasswordRequest", status_code=status.HTTP_202_ACCEPTED)
def reset_password_request(payload: PasswordResetRequest, accounts: AccountService = Depends(get_account_service)):
    # Same answer whether or not the email is registered
    accounts.request_password_reset(payload.email)
    return Response(status_code=status.HTTP_202_ACCEPTED)


@app.post("/user/resetPassword", status_code=status.HTTP_202_ACCEPTED)
def reset_password(payload: PasswordResetConfirm, accounts: AccountService = Depends(get_account_service)):
    accounts.reset_password(payload.token, payload.password)
    return Response(status_code=status.HTTP_202_ACCEPTED)
