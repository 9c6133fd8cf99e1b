"""PROMELA model and emitter."""
