"""Base classes for errors raised by the database-facing services.

Routes translate these into JSON responses using ``status_code``.
"""


class ServiceError(RuntimeError):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    status_code = 409
