"""
Named failure conditions raised by the services.

Every error carries a stable ``code`` for clients and the HTTP status the
API answers with. ``app.py`` installs a single handler that renders them as
``{"detail": ..., "code": ...}``.
"""
from fastapi import status


class ProctorError(Exception):
    code = "PROCTOR_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Request could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.message
        super().__init__(self.message)


class AccessDeniedToExam(ProctorError):
    code = "ACCESS_DENIED_TO_EXAM"
    status_code = status.HTTP_403_FORBIDDEN
    message = "You do not have access to this exam"


class NoActiveExam(ProctorError):
    code = "NO_ACTIVE_EXAM"
    status_code = status.HTTP_404_NOT_FOUND
    message = "No active exam available"


class ExamNotFound(ProctorError):
    code = "EXAM_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Exam not found"


class QuestionNotFound(ProctorError):
    code = "QUESTION_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Question not found"


class SessionNotFound(ProctorError):
    code = "SESSION_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Session not found"


class GroupNotFound(ProctorError):
    code = "GROUP_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Group not found"


class GroupNameExists(ProctorError):
    code = "GROUP_NAME_EXISTS"
    status_code = status.HTTP_409_CONFLICT
    message = "A group with this name already exists"


class StudentAlreadyInGroup(ProctorError):
    code = "STUDENT_ALREADY_IN_GROUP"
    status_code = status.HTTP_409_CONFLICT
    message = "Student is already a member of this group"


class StudentNotInGroup(ProctorError):
    code = "STUDENT_NOT_IN_GROUP"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Student is not a member of this group"


class GroupAlreadyAssigned(ProctorError):
    code = "GROUP_ALREADY_ASSIGNED"
    status_code = status.HTTP_409_CONFLICT
    message = "Group is already assigned to this exam"


class GroupNotAssigned(ProctorError):
    code = "GROUP_NOT_ASSIGNED"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Group is not assigned to this exam"


class UnauthorizedEmail(ProctorError):
    code = "UNAUTHORIZED_EMAIL"
    status_code = status.HTTP_403_FORBIDDEN
    message = "This email is not authorized to take the exam"


class InvalidCredentials(ProctorError):
    code = "INVALID_CREDENTIALS"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid credentials"


class InvalidToken(ProctorError):
    code = "INVALID_TOKEN"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid or expired token"


class SessionNotInProgress(ProctorError):
    code = "SESSION_NOT_IN_PROGRESS"
    status_code = status.HTTP_409_CONFLICT
    message = "Session is already completed"


class StudentNotFound(ProctorError):
    code = "STUDENT_NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Student not found"
