from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi import Depends

from .routers import (
    auth, exam_routers, group_routers, result_routers, student_routers, session_routers, violation_routers,
    response_routers, admin_routers,
)
from contextlib import asynccontextmanager
import logging

from .config import ALLOWED_ORIGINS, LOG_LEVEL
from .db import create_db_and_tables
from .errors import ProctorError
from .security import auth_backend, app_users
from .dependencies import users_router_permission
from .schemas.user_schema import UserCreate, UserRead, UserUpdate

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # run once when app starts
    await create_db_and_tables()
    logger.info("Database ready")
    yield

app = FastAPI(lifespan=lifespan)


app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,  # which sites can call this API
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ProctorError)
async def proctor_error_handler(request: Request, exc: ProctorError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


# Attach users router with small permission check. This router provides /users and /users/me
app.include_router(
    app_users.get_users_router(UserRead, UserUpdate),
    prefix="/users",
    tags=["users"],
    dependencies=[Depends(users_router_permission)],
)


app.include_router(exam_routers.router, prefix="/api")
app.include_router(group_routers.router, prefix="/api")
app.include_router(result_routers.router, prefix="/api")
app.include_router(student_routers.router, prefix="/api")
app.include_router(session_routers.router, prefix="/api")
app.include_router(violation_routers.router, prefix="/api")
app.include_router(response_routers.router, prefix="/api")
app.include_router(admin_routers.router, prefix="/api")

# Auth routers
app.include_router(app_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"])
app.include_router(auth.router)
app.include_router(app_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"])
app.include_router(app_users.get_verify_router(UserRead), prefix="/auth", tags=["auth"])
# students authorized by email set their first password here
app.include_router(app_users.get_reset_password_router(), prefix="/auth", tags=["auth"])
