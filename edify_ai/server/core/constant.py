"""Application-wide constants."""

PROJECT_NAME = "Edify AI Server"
API_PREFIX = "/api"
