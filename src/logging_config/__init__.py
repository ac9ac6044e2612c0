"""Structured logging for the discovery filter engine.

Provides JSON or console log output, session context binding
(session id, platform) and timing of lookups and commits.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import SessionContext, generate_session_id
from src.logging_config.performance import PerformanceTimer, log_performance
from src.logging_config.setup import configure_logging, get_logger

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "PerformanceTimer",
    "SessionContext",
    "configure_logging",
    "generate_session_id",
    "get_logger",
    "log_performance",
]
