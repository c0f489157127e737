"""
logging_config.py — Logging Setup for the Order Submission Service

Called once when `main.py` is imported, before the app object exists, so that
startup messages (configuration presence, client creation) already use the
shared format.

What gets configured:
    • INFO level on the root logger
    • ``[PID:...]`` tag per line, since uvicorn may run several workers
    • A log file (``ORDER_APP_LOG_FILE``, default ``order_submission.log``) next to stdout
    • httpx / httpcore lowered to WARNING; at INFO they log every QuickBase and
      identity toolkit URL, including the Firebase API key query parameter
"""

import logging
import os
import sys

DEFAULT_LOG_FILE = "order_submission.log"
LOG_FORMAT = '%(asctime)s - %(levelname)s - [PID:%(process)d] - %(message)s'


def setup_logging(log_file=None):
    """
    Installs the root handlers for the service.

    Args:
        log_file (str, optional): Path of the log file. Defaults to ORDER_APP_LOG_FILE,
            then 'order_submission.log'. An empty string logs to stdout only,
            which the test suite relies on.
    """
    if log_file is None:
        log_file = os.environ.get("ORDER_APP_LOG_FILE", DEFAULT_LOG_FILE)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT, handlers=handlers)

    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name):
    """
    Logger for one order submission module (``order_submission.<module>``).

    Args:
        name (str): Usually the module's __name__; workflow and access logs are
            grouped by it in the log file.

    Returns:
        logging.Logger
    """
    return logging.getLogger(name)
