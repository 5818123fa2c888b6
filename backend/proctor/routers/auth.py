#  custom login route for the app
from fastapi import APIRouter
from fastapi import Depends

from ..security import get_jwt_strategy, get_user_manager
from ..db import get_user_db
from ..errors import InvalidCredentials, InvalidToken, UnauthorizedEmail
from ..models.user_model import UserRole
from ..schemas.user_schema import LoginRequest, TokenVerifyRequest, UserRead
from ..utils import utcnow
from fastapi_users.password import PasswordHelper

import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix='/auth', tags=['auth'])


@router.post("/login")
async def login(payload: LoginRequest, user_db = Depends(get_user_db)):

    user = await user_db.get_by_email(payload.email)
    if not user or not user.is_active:
        raise InvalidCredentials()

    pwd_helper = PasswordHelper()
    valid, new_hash = pwd_helper.verify_and_update(payload.password, user.hashed_password)

    if not valid:
        raise InvalidCredentials()

    # students need an admin to authorize their email first
    if user.role == UserRole.STUDENT and not user.is_authorized:
        logger.info("Login refused for unauthorized student %s", user.email)
        raise UnauthorizedEmail()

    update = {"last_login": utcnow()}
    if new_hash:
        update["hashed_password"] = new_hash
    user = await user_db.update(user, update)

    #  JWT token
    strategy = get_jwt_strategy()
    access_token = await strategy.write_token(user)

    # ORM user to schema for JSON
    user_out = UserRead.model_validate(user, from_attributes=True)

    # user and token
    return {"user": user_out, "token": access_token}


@router.post("/verify-token", response_model=UserRead)
async def verify_token(payload: TokenVerifyRequest, user_manager = Depends(get_user_manager)):
    strategy = get_jwt_strategy()
    user = await strategy.read_token(payload.token, user_manager)
    if user is None or not user.is_active:
        raise InvalidToken()
    return UserRead.model_validate(user, from_attributes=True)
