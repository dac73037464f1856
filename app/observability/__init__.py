"""Lightweight observability helpers.

Correlation context (trace id / span id) rides in a ContextVar and is folded into
every structlog event; access lines go to a dedicated key=value file, the rest
goes to stdout as JSON. Plus an in-memory metrics snapshot for local development.
"""
