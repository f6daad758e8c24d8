from docongo.middleware.jwt_auth import JWTAuthMiddleware
from docongo.middleware.request_logging import RequestLoggingMiddleware

__all__ = ["JWTAuthMiddleware", "RequestLoggingMiddleware"]
