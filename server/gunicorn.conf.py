"""Gunicorn configuration for production deployment.

Reads settings from environment variables (same as config.py).

The query cache and the task event broadcaster live in process memory,
so WORKERS defaults to 1: a second worker would hold its own cache and
miss task events published by the first.

Usage:
    gunicorn main:app -c gunicorn.conf.py
"""
import os

# Load from environment (same vars used by config.py)
host = os.getenv("HOST", "0.0.0.0")
port = os.getenv("PORT", "3010")
log_level = os.getenv("LOG_LEVEL", "INFO").lower()
debug = os.getenv("DEBUG", "false").lower() == "true"

bind = f"{host}:{port}"

workers = int(os.getenv("WORKERS", "1"))
worker_class = "uvicorn.workers.UvicornWorker"

# SSE connections stay open indefinitely; the heartbeat keeps them alive
timeout = int(os.getenv("GUNICORN_TIMEOUT", "120"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))

# Logging - use LOG_LEVEL from .env
accesslog = "-" if not debug else None
errorlog = "-"
loglevel = log_level

proc_name = "intranet-portal"

preload_app = not debug
