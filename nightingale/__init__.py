"""Database models and a task-executor client for an alerting and monitoring platform."""

__version__ = "5.6.4"