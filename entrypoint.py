import uvicorn

from constants import load_settings
from logging_config import get_logger, setup_logging

settings = load_settings()
setup_logging(log_level=settings.log_level, log_file=settings.log_file)
logger = get_logger(__name__)


def main():
    logger.info(f"Starting marketplace gateway on {settings.host}:{settings.port}")
    logger.info(f"Health Check: http://localhost:{settings.port}/api/health")
    logger.info(f"CORS Test: http://localhost:{settings.port}/api/cors-test")
    uvicorn.run(
        "app:app",
        host=settings.host,
        port=settings.port,
        ws_ping_interval=settings.ws_ping_interval,
        ws_ping_timeout=settings.ws_ping_timeout,
        log_config=None,
    )


if __name__ == "__main__":
    main()
