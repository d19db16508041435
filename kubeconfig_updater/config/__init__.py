from .settings import ConfigurationError, LoggingSettings, Settings


__all__ = ["ConfigurationError", "LoggingSettings", "Settings"]
