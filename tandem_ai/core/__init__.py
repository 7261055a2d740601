"""
Core utilities and configuration for tandem_ai.

This package provides the environment driven settings and the logging
configuration shared by every agent_core subpackage.
"""

from tandem_ai.core.logging_config import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
