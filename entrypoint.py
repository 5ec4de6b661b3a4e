import uvicorn

from constants import HOST, LOG_FILE, LOG_LEVEL, PORT, RELOAD
from logging_config import get_logger, setup_logging

# Setup logging before uvicorn imports the app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting realtime rooms server on {HOST}:{PORT}")
    uvicorn.run("app:create_app", factory=True, host=HOST, port=PORT, reload=RELOAD)
