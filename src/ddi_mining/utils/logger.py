"""
Logging Configuration

Rotating file logging and console logging for DDI mining runs.
"""

import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Dict, Optional


_loggers: dict = {}

LOG_DIR = os.path.join("logs", "ddi_mining")

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logger(
    name: str = "ddi_mining",
    log_dir: Optional[str] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    console_output: bool = True,
    file_output: bool = True,
) -> logging.Logger:
    """
    Set up logger with rotating file handler and optional console output.

    Configuring the ``ddi_mining`` logger also captures every module logger
    of the package, since they are its children.

    Args:
        name: Logger name
        log_dir: Directory for log files (default: logs/ddi_mining/)
        level: Logging level
        max_bytes: Max size per log file before rotation
        backup_count: Number of backup files to keep
        console_output: Whether to also log to console
        file_output: Whether to write a rotating log file

    Returns:
        Configured logger
    """
    if name in _loggers:
        return _loggers[name]

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    log_file = None
    if file_output:
        log_directory = log_dir or LOG_DIR
        os.makedirs(log_directory, exist_ok=True)
        log_file = os.path.join(log_directory, f"{name}.log")
        file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    # Quiet noisy HTTP libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    _loggers[name] = logger

    logger.info(f"Logger '{name}' initialized. Log file: {log_file or 'disabled'}")
    return logger


def get_logger(name: str = "ddi_mining") -> logging.Logger:
    """Get existing logger or create one with defaults."""
    if name in _loggers:
        return _loggers[name]
    return setup_logger(name)


def log_job_start(job_id: str, total_drugs: int, workers: int, logger: Optional[logging.Logger] = None):
    """Log mining job start."""
    log = logger or logging.getLogger("ddi_mining")
    log.info("=" * 60)
    log.info("DDI MINING JOB STARTED")
    log.info(f"  Job ID: {job_id}")
    log.info(f"  Total Drugs: {total_drugs}")
    log.info(f"  Workers: {workers}")
    log.info(f"  Started At: {datetime.now().isoformat()}")
    log.info("=" * 60)


def log_job_end(job_id: str, status: str, summary: Dict, logger: Optional[logging.Logger] = None):
    """Log mining job end."""
    log = logger or logging.getLogger("ddi_mining")
    log.info("=" * 60)
    log.info("DDI MINING JOB FINISHED")
    log.info(f"  Job ID: {job_id}")
    log.info(f"  Status: {status}")
    log.info(f"  Processed: {summary.get('processed_count', 0)}/{summary.get('total_drugs', 0)}")
    log.info(f"  Failed: {len(summary.get('failed_drugs', []))}")
    log.info(f"  Completed At: {datetime.now().isoformat()}")
    log.info("=" * 60)


def log_drug_result(
    drug_name: str,
    status: str,
    evidence_count: int = 0,
    error: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
):
    """Log individual drug mining result."""
    log = logger or logging.getLogger("ddi_mining")
    if status == "completed":
        log.info(f"[OK] {drug_name}: {evidence_count} interaction record(s)")
    elif status == "partial":
        log.warning(f"[PARTIAL] {drug_name}: {evidence_count} interaction record(s) - {error or 'some sources failed'}")
    else:
        log.error(f"[FAIL] {drug_name}: {error or 'Unknown error'}")
