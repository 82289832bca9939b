from fizzy.api.errors import (
    ApiError,
    AuthenticationError,
    ErrorKind,
    NotFoundError,
    RateLimitError,
    ValidationError,
)

__all__ = [
    "ApiError",
    "AuthenticationError",
    "ErrorKind",
    "NotFoundError",
    "RateLimitError",
    "ValidationError",
]
