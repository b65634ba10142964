"""Gunicorn configuration for the admin console.

    gunicorn -c gunicorn.conf.py admin_console.flask_app:app

Secrets (FLASK_SECRET_KEY) are read by settings.py from /run/secrets first,
then from the environment.
"""
import os
from pathlib import Path

bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "2"))
threads = int(os.environ.get("GUNICORN_THREADS", "4"))
# Backend calls retry with backoff; leave room for SERVICE_MAX_RETRIES attempts
timeout = int(os.environ.get("GUNICORN_TIMEOUT", "60"))
accesslog = "-"
errorlog = "-"
loglevel = os.environ.get("LOG_LEVEL", "info").lower()


def post_fork(server, worker):
    """Log where the worker will take its secrets from."""
    demo_mode = os.environ.get("DEMO_MODE", "false").lower() == "true"
    if demo_mode:
        worker.log.warning("DEMO_MODE=true: demo defaults in use, do not expose this instance")

    secrets_dir = Path("/run/secrets")
    if secrets_dir.is_dir() and any(secrets_dir.iterdir()):
        worker.log.info("Using secrets mounted in /run/secrets")
    elif not os.environ.get("FLASK_SECRET_KEY") and not demo_mode:
        worker.log.error("FLASK_SECRET_KEY missing from /run/secrets and environment")
