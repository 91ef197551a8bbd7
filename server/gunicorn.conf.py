"""Gunicorn configuration for production deployment.

Reads the same environment variables as core/config.py.

Usage:
    gunicorn main:app -c gunicorn.conf.py

The in-memory storage and cache backends live inside one process, so keep
WORKERS=1 unless STORAGE_BACKEND=database and Redis caching are configured.
"""
import os

host = os.getenv("HOST", "0.0.0.0")
port = os.getenv("PORT", "5000")
log_level = os.getenv("LOG_LEVEL", "INFO").lower()
debug = os.getenv("DEBUG", "false").lower() == "true"

bind = f"{host}:{port}"

workers = int(os.getenv("WORKERS", "1"))
worker_class = "uvicorn.workers.UvicornWorker"

timeout = int(os.getenv("GUNICORN_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", "5"))

# structlog already writes request lines; gunicorn only reports errors
accesslog = None
errorlog = "-"
loglevel = log_level

proc_name = "micropost-api"

preload_app = not debug
