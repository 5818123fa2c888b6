from fastapi import Depends, HTTPException, status, Request
from .models.user_model import User, UserRole
from .security import current_active_user


def _forbidden(detail: str = "Operation not permitted") -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def current_user_has_role(required_role: UserRole):
    async def current_user_contains_role(user: User = Depends(current_active_user)):
        if user.role != required_role:
            raise _forbidden()
        return user
    return current_user_contains_role


current_admin = current_user_has_role(UserRole.ADMIN)
current_student = current_user_has_role(UserRole.STUDENT)


def ensure_session_owner(exam_session, user: User) -> None:
    """Students may only touch their own sessions, admins may read any."""
    if user.role == UserRole.ADMIN:
        return
    if exam_session.student_id != user.id:
        raise _forbidden("Access denied to this session")


async def users_router_permission(request: Request, user: User = Depends(current_active_user)):
    if user.role == UserRole.ADMIN:
        return True

    # writes on /users are admin only
    if request.method.upper() in ("POST", "PUT", "PATCH", "DELETE"):
        raise _forbidden()

    # /users/me has no id, /users/{id} must be the caller
    target = request.path_params.get("id")
    if target is not None and str(target) != str(user.id):
        raise _forbidden()
    return True
