from fastapi_users import schemas
from ..models.user_model import UserRole
import uuid
from pydantic import BaseModel


class UserRead(schemas.BaseUser[uuid.UUID]):
    full_name: str | None = None
    role: UserRole
    is_authorized: bool


class UserCreate(schemas.BaseUserCreate):
    full_name: str | None = None
    role: UserRole = UserRole.STUDENT # Default role on creation
    is_authorized: bool = False


class UserUpdate(schemas.BaseUserUpdate):
    full_name : str | None = None
    role: UserRole | None = None
    is_authorized: bool | None = None


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenVerifyRequest(BaseModel):
    token: str
