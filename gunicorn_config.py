"""
Gunicorn configuration for Batch Retagger production deployment
"""
import os

# Server socket
bind = f"0.0.0.0:{os.environ.get('PORT', '8340')}"
backlog = 2048

# Worker processes
# Single worker: uploaded files, cover art and batch jobs live in process memory,
# so a second worker would not see files uploaded through the first
workers = 1
worker_class = 'gthread'
threads = 4
timeout = 300  # large batches of uploads
keepalive = 5

# Logging
accesslog = '-'
errorlog = '-'
loglevel = 'info'

# Process naming
proc_name = 'batch-retagger'

# Server mechanics
daemon = False
pidfile = None
tmp_upload_dir = None

# SSL/Security (handled by reverse proxy)
secure_scheme_headers = {'X-FORWARDED-PROTO': 'https', 'X-FORWARDED-SSL': 'on'}

# Jobs run on threads inside the worker, never share it with a preloaded master
preload_app = False


def when_ready(server):
    """Called just after the server is started."""
    server.log.info("Batch Retagger is ready. Listening at: %s", server.address)


def worker_exit(server, worker):
    """Called when a worker exits; in-memory files and jobs are lost."""
    server.log.info("Worker %s exited, uploaded files were discarded", worker.pid)
