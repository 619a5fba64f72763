from src.agrogate.api.middlewares.request_context import request_context_middleware

__all__ = ["request_context_middleware"]
