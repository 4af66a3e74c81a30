"""Conversation state, routing, confirmation handling and task synchronization."""
