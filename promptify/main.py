import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi_users.password import PasswordHelper
from sqlalchemy import select

from .database import init_db, async_session_maker
from .errors import PromptifyError
from .models import User
from .routers import admin_prompts, prompts, user
from .schemas import Identity, UserCreate, UserRead, UserUpdate
from .services.profiles import ensure_profile
from .settings.config import settings
from .users import auth_backend, cookie_backend, fastapi_users

logging.basicConfig(level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
logger = logging.getLogger(__name__)


# ----------------------
# Auto-create admin user
# ----------------------
async def create_admin_user():
    admin_email = settings.ADMIN_EMAIL
    admin_password = settings.ADMIN_PASSWORD

    if not admin_email or not admin_password:
        logger.info("ADMIN_EMAIL or ADMIN_PASSWORD not set, skipping admin creation.")
        return

    async with async_session_maker() as session:
        existing = (await session.execute(select(User).where(User.email == admin_email))).scalars().first()
        if existing is None:
            existing = User(
                email=admin_email,
                hashed_password=PasswordHelper().hash(admin_password),
                display_name=settings.ADMIN_NAME,
                is_superuser=True,
                is_active=True,
                is_verified=True,
            )
            session.add(existing)
            await session.commit()
            logger.info("Admin user created: %s", admin_email)
        else:
            logger.info("Admin user already exists: %s", admin_email)
        await ensure_profile(session, Identity.from_user(existing))


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    await create_admin_user()
    yield


app = FastAPI(title="Promptify", lifespan=lifespan)

# Enable CORS if needed
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Update for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PromptifyError)
async def _promptify_error_handler(request: Request, exc: PromptifyError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.debug("%s %s -> %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


# ----------------------
# Route Includes
# ----------------------
app.include_router(prompts.router)
app.include_router(user.router)
app.include_router(admin_prompts.router)

# Authentication Routes
app.include_router(
    fastapi_users.get_auth_router(auth_backend),
    prefix="/auth/jwt",
    tags=["auth"],
)
app.include_router(
    fastapi_users.get_auth_router(cookie_backend),
    prefix="/auth/cookie",
    tags=["auth"],
)
app.include_router(
    fastapi_users.get_register_router(UserRead, UserCreate),
    prefix="/auth",
    tags=["auth"],
)
app.include_router(
    fastapi_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"],
)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
