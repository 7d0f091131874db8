"""FastAPI server for the Edify AI platform."""
