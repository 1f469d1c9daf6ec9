"""
Production Server Configuration

Run FastAPI with Uvicorn workers under Gunicorn.
"""

import os

# Server socket
bind = os.getenv("BIND", f"0.0.0.0:{os.getenv('PORT', '10000')}")
backlog = 2048

# One worker: the order sync guard and the scheduler are per process
workers = int(os.getenv("WORKERS", 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
max_requests = 10000
max_requests_jitter = 1000
# A full catalog refresh over a slow connection can take minutes
timeout = 300
keepalive = 5
graceful_timeout = 30

# Process naming
proc_name = "storecache-api"

# Server mechanics
daemon = False
pidfile = "/tmp/gunicorn.pid"

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()
accesslog = "-"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'


def when_ready(server):
    """Called when server is ready to receive connections."""
    server.log.info("storecache-api ready on %s", bind)
