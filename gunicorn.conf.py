"""
Gunicorn configuration for the Aura rule service.

    gunicorn aura.main:app -c gunicorn.conf.py

Env vars that override defaults:
  PORT     - TCP port to bind
  WORKERS  - number of worker processes (default: 2)

Each worker process builds its own EvaluationWorker. Evaluations of the
same Aura are serialized by a per-Aura lock inside a process and by a
row lock on the Aura (SELECT ... FOR UPDATE) across processes.
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

workers = int(os.environ.get("WORKERS", "2"))

# Uvicorn's ASGI event loop inside Gunicorn's process manager.
worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5

# A cron-triggered evaluation cycle over many Auras can take a while.
timeout = 120

# stdout only; application logs go through aura.core.logging
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

graceful_timeout = 30
