"""
Access-control errors.
Predicates never raise these; mutating operations and route guards do.
main.py maps each class to an HTTP status.
"""

from typing import Optional


class AccessControlError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationMissing(AccessControlError):
    """No resolvable principal for the request"""
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class PermissionDenied(AccessControlError):
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class LookupDegraded(AccessControlError):
    """A permission-loading lookup failed and was resolved to an empty set"""
    status_code = 503

    def __init__(self, dimension: str, cause: Exception):
        super().__init__(f"Lookup '{dimension}' degraded: {cause}")
        self.dimension = dimension
        self.cause = cause


class ValidationError(AccessControlError):
    status_code = 422


class RateLimitExceeded(AccessControlError):
    status_code = 429

    def __init__(self, limit: int, window_hours: int, retry_after_seconds: Optional[int] = None):
        super().__init__(
            f"You have reached the limit of {limit} role requests. Please try again in {window_hours}h."
        )
        self.limit = limit
        self.window_hours = window_hours
        self.retry_after_seconds = retry_after_seconds


class InvalidTransition(AccessControlError):
    status_code = 409

    def __init__(self, request_id: str, current_status: str, target_status: str):
        super().__init__(
            f"Role request {request_id} is '{current_status}' and cannot be {target_status}"
        )
        self.request_id = request_id
        self.current_status = current_status
        self.target_status = target_status


class RoleRequestNotFound(AccessControlError):
    status_code = 404

    def __init__(self, request_id: str):
        super().__init__(f"Role request {request_id} not found")
        self.request_id = request_id


class RoleGrantNotFound(AccessControlError):
    status_code = 404

    def __init__(self, user_id: str, role: str):
        super().__init__(f"No '{role}' grant found for user {user_id}")
        self.user_id = user_id
        self.role = role
