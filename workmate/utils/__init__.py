"""Audio and response helpers."""
