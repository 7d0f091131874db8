"""Shared infrastructure: logging, monitoring, persistence and value models."""
