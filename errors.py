"""Errors raised by the service layer.

Each error carries the HTTP status it is reported with; ``main.py`` turns them
into ``{"error": message}`` responses.
"""


class StudyTrackerError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StudyTrackerError):
    status_code = 400


class AuthenticationError(StudyTrackerError):
    status_code = 401


class PermissionDeniedError(StudyTrackerError):
    status_code = 403


class NotFoundError(StudyTrackerError):
    status_code = 404


class StoreUnavailableError(StudyTrackerError):
    status_code = 500
