from utils.logger import get_logger, log_error, log_info, log_success, log_warning, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "log_info",
    "log_success",
    "log_warning",
    "log_error",
]
