"""Clients for the language model and the task persistence service."""
