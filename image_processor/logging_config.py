"""
Centralized Logging Configuration
Provides structured logging for the entire application
"""
import logging
import sys
import time
from pathlib import Path
from datetime import datetime
from typing import Optional

LOGS_DIR = Path(__file__).parent.parent / "logs"

# Log format with detailed information
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Color codes for console output
COLORS = {
    'DEBUG': '\033[36m',      # Cyan
    'INFO': '\033[32m',       # Green
    'WARNING': '\033[33m',    # Yellow
    'ERROR': '\033[31m',      # Red
    'CRITICAL': '\033[35m',   # Magenta
    'RESET': '\033[0m'
}


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output"""

    def format(self, record):
        # Color a copy so file handlers sharing the record stay plain
        record = logging.makeLogRecord(record.__dict__)
        levelname = record.levelname
        if levelname in COLORS:
            record.levelname = f"{COLORS[levelname]}{levelname}{COLORS['RESET']}"
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    log_to_file: bool = True,
    log_to_console: bool = True,
    logs_dir: Optional[Path] = None
) -> None:
    """
    Setup logging configuration for the entire application

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_to_file: Whether to log to file
        log_to_console: Whether to log to console
        logs_dir: Directory for log files (defaults to ./logs next to the package)
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root_logger.addHandler(console_handler)

    logs_dir = Path(logs_dir) if logs_dir else LOGS_DIR
    today = datetime.now().strftime("%Y-%m-%d")

    if log_to_file:
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

        file_handler = logging.FileHandler(logs_dir / f"app_{today}.log", encoding='utf-8')
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

        # Separate file for errors
        error_handler = logging.FileHandler(logs_dir / f"errors_{today}.log", encoding='utf-8')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(file_formatter)
        root_logger.addHandler(error_handler)

        # Separate file for AI gateway calls
        gateway_handler = logging.FileHandler(logs_dir / f"gateway_{today}.log", encoding='utf-8')
        gateway_handler.setLevel(logging.DEBUG)
        gateway_handler.setFormatter(file_formatter)
        gateway_logger = logging.getLogger('image_processor.gateway_service')
        gateway_logger.handlers.clear()
        gateway_logger.addHandler(gateway_handler)

    # Reduce noise from third-party libraries
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)
    logging.getLogger('PIL').setLevel(logging.WARNING)
    logging.getLogger('multipart').setLevel(logging.WARNING)

    logging.info("=" * 80)
    logging.info("🚀 AI IMAGE PROCESSOR - LOGGING INITIALIZED")
    logging.info("=" * 80)
    logging.info(f"   Level: {level}")
    logging.info(f"   Console output: {log_to_console}")
    logging.info(f"   File output: {log_to_file}")
    if log_to_file:
        logging.info(f"   Log directory: {logs_dir}")
        logging.info(f"   Main log: app_{today}.log")
        logging.info(f"   Error log: errors_{today}.log")
        logging.info(f"   Gateway log: gateway_{today}.log")
    logging.info("=" * 80)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name"""
    return logging.getLogger(name)


class RequestLogger:
    """Helper class for logging request details with structured output"""

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.request_id: Optional[str] = None
        self.start_time: Optional[float] = None

    def start_request(self, request_id: str, operation: str, **kwargs):
        """Log the start of a request"""
        self.request_id = request_id
        self.start_time = time.time()

        self.logger.info("=" * 80)
        self.logger.info(f"📥 REQUEST START | ID: {request_id}")
        self.logger.info(f"   Operation: {operation}")
        for key, value in kwargs.items():
            self.logger.info(f"   {key}: {value}")
        self.logger.info("-" * 80)

    def log_routing_decision(self, operation: str, use_ai: bool, reason: str):
        """Log routing decision (LOCAL vs AI)"""
        method = "☁️ AI (gateway)" if use_ai else "💻 LOCAL (engine)"
        self.logger.info(f"🔀 ROUTING DECISION | {operation}")
        self.logger.info(f"   Decision: {method}")
        self.logger.info(f"   Reason: {reason}")

    def log_stage(self, stage: str, latency_ms: int, **details):
        """Log a completed pipeline stage"""
        self.logger.info(f"⚙️ STAGE | {stage} | {latency_ms}ms")
        for key, value in details.items():
            self.logger.info(f"   {key}: {value}")

    def log_fallback(self, source: str, error_kind: str, error: str):
        """Log a fallback away from a failed path"""
        self.logger.warning(f"⚠️ FALLBACK | {source} failed ({error_kind})")
        self.logger.warning(f"   Error: {error}")

    def end_request(self, success: bool, **kwargs):
        """Log the end of a request"""
        duration_ms = int((time.time() - self.start_time) * 1000) if self.start_time else 0
        status = "✅ SUCCESS" if success else "❌ FAILED"

        self.logger.info("-" * 80)
        self.logger.info(f"📤 REQUEST END | ID: {self.request_id}")
        self.logger.info(f"   Status: {status}")
        self.logger.info(f"   Duration: {duration_ms}ms")
        for key, value in kwargs.items():
            if isinstance(value, float):
                self.logger.info(f"   {key}: {value:.4f}")
            else:
                self.logger.info(f"   {key}: {value}")
        self.logger.info("=" * 80)


def create_request_logger(name: str) -> RequestLogger:
    """Create a RequestLogger instance"""
    return RequestLogger(get_logger(name))
