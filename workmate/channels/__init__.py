"""Transport layers for the conversation manager."""
