"""Edify AI.

Backend for a multi-tenant education AI-tools platform. Identity lives with
Clerk, billing with Stripe, generation and screening with OpenAI, and
everything the platform records lives in a relational database reached
through SQLModel.

Subpackages
-----------

- ``edify_ai.core``: logging, monitoring, database entities and repositories,
  and the shared value models (content flags, chat messages).
- ``edify_ai.server``: the FastAPI application, its routers, services and
  exception handlers.
"""
