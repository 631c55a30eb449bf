"""
Structured logging for solbeck.

JSON logs with timestamp, event_type, user_id / operation_id where bound.
Use get_logger() in all modules for aggregation-friendly output.
"""

from solbeck.solbeck_logging.logger import bind_user, get_logger, short_addr

__all__ = ["bind_user", "get_logger", "short_addr"]
