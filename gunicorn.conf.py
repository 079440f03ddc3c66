"""
Gunicorn configuration for the Chapters API.

Env vars that override defaults:
  PORT     — TCP port to bind
  WORKERS  — number of worker processes (default: 2)
  TIMEOUT  — worker timeout in seconds (default: 180)
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

workers = int(os.environ.get("WORKERS", "2"))

worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5

# A manual run may wait on several generation calls
# (GENERATION_TIMEOUT_SECONDS each); keep this well above it.
timeout = int(os.environ.get("TIMEOUT", "180"))

# stdout only; app logs share the stream (app/core/logging.py).
loglevel = "info"
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

graceful_timeout = 30
