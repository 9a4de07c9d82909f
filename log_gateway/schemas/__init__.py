from log_gateway.schemas.logs import LogRequest

__all__ = ["LogRequest"]
