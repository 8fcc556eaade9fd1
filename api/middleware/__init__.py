from .request_id import RequestIDMiddleware, bind_identity
from .logging import LoggingMiddleware

__all__ = [
    "RequestIDMiddleware",
    "LoggingMiddleware",
    "bind_identity",
]
