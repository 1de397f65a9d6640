"""Logging utilities with query ID tracking."""

import json
import logging
import logging.handlers
import os
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

PACKAGE_LOGGER = "azure_flow_investigator"
HOME_ENV_VAR = "AZURE_FLOW_INVESTIGATOR_HOME"


def get_app_home() -> Path:
    """Resolve the directory holding logs and stored results."""
    if override := os.environ.get(HOME_ENV_VAR):
        return Path(override)
    return Path.home() / ".azure-flow-logs"


def setup_logger(name: str = PACKAGE_LOGGER, debug: bool = False) -> logging.Logger:
    """Setup logger with rotating file and console handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    if logger.handlers:
        return logger

    log_dir = get_app_home()
    log_dir.mkdir(parents=True, exist_ok=True)

    # Rotating file handler (30MB max, 5 backups)
    file_handler = logging.handlers.RotatingFileHandler(
        log_dir / "azure-flow-investigator.log",
        maxBytes=30 * 1024 * 1024,
        backupCount=5,
    )
    console_handler = logging.StreamHandler()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    file_handler.setFormatter(formatter)
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def generate_query_id() -> str:
    """Generate unique query ID."""
    return str(uuid.uuid4())[:8]


def log_query_start(logger: logging.Logger, query_id: str, **kwargs: Any) -> None:
    """Log query start with parameters."""
    logger.info(f"Query {query_id} started - {kwargs}")


def log_query_end(
    logger: logging.Logger,
    query_id: str,
    success: bool,
    result_data: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> None:
    """Log query completion, storing result data when given."""
    status = "SUCCESS" if success else "FAILED"
    log_data = {"query_id": query_id, "status": status, **kwargs}

    if result_data:
        store_query_result(query_id, result_data)

    logger.info(f"Query {query_id} {status} - {json.dumps(log_data, default=str)}")


def _results_dir() -> Path:
    return get_app_home() / "results"


def store_query_result(query_id: str, result_data: Dict[str, Any]) -> None:
    """Store query result data for later retrieval."""
    results_dir = _results_dir()
    results_dir.mkdir(parents=True, exist_ok=True)

    with open(results_dir / f"{query_id}.json", "w") as f:
        json.dump(result_data, f, indent=2, default=str)


def get_query_result(query_id: str) -> Optional[Dict[str, Any]]:
    """Retrieve stored query result by ID."""
    # Query IDs are generated hex prefixes; anything else cannot name a stored file
    if not query_id.replace("-", "").isalnum():
        return None

    result_file = _results_dir() / f"{query_id}.json"
    if result_file.exists():
        with open(result_file, "r") as f:
            return json.load(f)  # type: ignore[no-any-return]
    return None
