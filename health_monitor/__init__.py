"""Health endpoint monitor that alerts on failures and triggers redeployment."""

from .config import ConfigurationError, MonitorConfig, load_config
from .monitor import HealthMonitor

__all__ = ["ConfigurationError", "HealthMonitor", "MonitorConfig", "load_config"]
