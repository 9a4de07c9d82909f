import logging
import sys

from log_gateway.core.config import settings


HEALTH_PROBE_PATHS = ("/health", "/health/ready")


class HealthProbeFilter(logging.Filter):
    """Drop uvicorn access records for liveness/readiness probes."""
    
    def filter(self, record):
        if record.name != "uvicorn.access":
            return True
        
        # uvicorn passes (client, method, path, http_version, status)
        args = record.args
        if isinstance(args, tuple) and len(args) >= 3:
            path = str(args[2]).split("?", 1)[0]
            return path not in HEALTH_PROBE_PATHS
        return True


def setup_logging(level: str = None):
    """Configure root logging and attach the probe filter to uvicorn."""
    level = level or settings.log_level
    
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    
    # Create console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(formatter)
    
    # Clear existing handlers and add our configured handler
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    
    uvicorn_access_logger = logging.getLogger("uvicorn.access")
    uvicorn_access_logger.addFilter(HealthProbeFilter())
    
    return root_logger
