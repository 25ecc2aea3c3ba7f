# ctaflow/core/logging_config.py
"""
Logging configuration for the CTA flow builder.
Colored console output plus rotating files; flow API traffic gets its own file.
"""
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Optional


LOGS_DIR = Path(__file__).parent.parent.parent / "logs"

FLOW_API_LOGGER = "ctaflow.flow_api"
SENSITIVE_KEYS = {"authorization", "token", "password", "secret", "api_key"}

DETAILED_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)-24s | %(filename)s:%(lineno)d | %(message)s'
TRAFFIC_FORMAT = '%(asctime)s | %(levelname)-8s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class ColoredFormatter(logging.Formatter):
    """Colors the level name on terminals"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record):
        levelname = record.levelname
        color = self.COLORS.get(levelname)
        if color:
            record.levelname = f"{color}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _rotating(path: Path, level: int, fmt: str, max_mb: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=5,
        encoding='utf-8'
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=DATE_FORMAT))
    return handler


def setup_logging(app_name: str = "ctaflow", level: str = "INFO", log_dir: Optional[Path] = None):
    """
    Install console and file handlers on the root logger.

    Files written under `log_dir` (default: <project>/logs):
    - error.log: ERROR and above
    - debug.log: everything
    - flow_api.log: requests/responses exchanged with the flow API
    """
    logs_dir = Path(log_dir) if log_dir else LOGS_DIR
    logs_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(ColoredFormatter('%(levelname)s | %(name)s | %(message)s'))
    root_logger.addHandler(console)

    root_logger.addHandler(_rotating(logs_dir / "error.log", logging.ERROR, DETAILED_FORMAT, 10))
    root_logger.addHandler(_rotating(logs_dir / "debug.log", logging.DEBUG, DETAILED_FORMAT, 20))

    # traffic also propagates to the root handlers
    api_logger = get_flow_api_logger()
    for handler in api_logger.handlers[:]:
        api_logger.removeHandler(handler)
    api_logger.addHandler(_rotating(logs_dir / "flow_api.log", logging.DEBUG, TRAFFIC_FORMAT, 20))
    api_logger.setLevel(logging.DEBUG)

    logging.getLogger(__name__).info(f"📝 Logging initialized for {app_name} in {logs_dir}")
    return root_logger


def get_flow_api_logger() -> logging.Logger:
    return logging.getLogger(FLOW_API_LOGGER)


# ────────────────────────────────────────────
# Traffic helpers
# ────────────────────────────────────────────

def _mask(headers: Optional[dict]) -> dict:
    return {
        k: ('***' if k.lower() in SENSITIVE_KEYS else v)
        for k, v in (headers or {}).items()
    }


def log_api_request(logger, method: str, endpoint: str, data: Any = None, headers: Optional[dict] = None):
    logger.debug(f"🌐 {method} {endpoint}")
    if headers:
        logger.debug(f"   headers: {_mask(headers)}")
    if data is not None:
        logger.debug(f"   body: {data}")


def log_api_response(logger, status_code: Optional[int], response_data: Any = None, error: Optional[Exception] = None):
    if error:
        logger.error(f"❌ HTTP {status_code} | {type(error).__name__}: {error}")
        return
    logger.debug(f"📥 HTTP {status_code}")
    if response_data is not None:
        logger.debug(f"   data: {response_data}")
