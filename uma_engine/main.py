"""Main entry point for Uma Engine."""

import logging
import sys
from datetime import datetime
from pathlib import Path

import uvicorn


def setup_logging(debug: bool = False):
    """Configure logging."""
    level = logging.DEBUG if debug else logging.INFO

    handlers = [logging.StreamHandler(sys.stdout)]

    file_handler = None
    log_file = None

    # Add file handler if debug mode is enabled
    if debug:
        log_dir = Path("data/debug_logs/server")
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"server_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        handlers.append(file_handler)

    # Root stays at INFO so library loggers stay quiet
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )

    app_logger = logging.getLogger('uma_engine')
    app_logger.setLevel(level)

    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)

    startup_logger = logging.getLogger(__name__)
    if debug:
        startup_logger.info(f"[STARTUP] Server log file: {log_file}")
    startup_logger.info(f"[STARTUP] Logging configured: level={logging.getLevelName(level)}")

    return file_handler, log_file


def main():
    """Run the FastAPI server."""
    from uma_engine.config import ConfigLoader, ConfigLoadError, SystemConfig
    try:
        loader = ConfigLoader()
        system_config = loader.load_system_config()
    except ConfigLoadError as e:
        # Logger isn't configured yet
        logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        logging.getLogger(__name__).warning(f"[STARTUP WARNING] Could not load system config: {e}, using defaults")
        system_config = SystemConfig()

    setup_logging(debug=system_config.debug)

    logger = logging.getLogger(__name__)
    logger.info(f"Starting Uma Engine server (debug mode: {system_config.debug})...")
    logger.info(f"Server will listen on {system_config.api_host}:{system_config.api_port}")

    uvicorn.run(
        "uma_engine.api.app:app",
        host=system_config.api_host,
        port=system_config.api_port,
        reload=False,
        log_level="info",
        log_config=None,  # Keep our basicConfig
    )


if __name__ == "__main__":
    main()
