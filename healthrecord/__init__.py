"""Personal health record API."""

APP_NAME = "HealthRecord"

__version__ = "0.1.0"
