"""Workmate: a conversational task-management assistant."""

__version__ = "1.0.0"
