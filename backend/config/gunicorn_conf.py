# ==============================================================================
# GUNICORN CONFIGURATION FOR THE ERRAND DRIVER API
# gunicorn -c config/gunicorn_conf.py config.asgi:application
# ==============================================================================

import os
import multiprocessing

# ==============================================================================
# WORKERS
# (2 * CPU_COUNT) + 1 unless GUNICORN_WORKERS is set
# ==============================================================================
CPU_COUNT = multiprocessing.cpu_count()
workers = int(os.getenv("GUNICORN_WORKERS", (CPU_COUNT * 2) + 1))

# Uvicorn worker serving the ASGI application
worker_class = os.getenv("GUNICORN_WORKER_CLASS", "uvicorn.workers.UvicornWorker")

# Recycle workers periodically; jitter avoids restarting them all at once
max_requests = int(os.getenv("GUNICORN_MAX_REQUESTS", 1000))
max_requests_jitter = int(os.getenv("GUNICORN_MAX_REQUESTS_JITTER", 100))

# ==============================================================================
# SOCKET & TIMEOUTS
# ==============================================================================
port = int(os.getenv("PORT", 8000))
bind = [f"0.0.0.0:{port}"]
proc_name = "errand-api"

# Document uploads are the slowest requests we serve
timeout = int(os.getenv("GUNICORN_TIMEOUT", 60))
graceful_timeout = int(os.getenv("GUNICORN_GRACEFUL_TIMEOUT", 30))
keepalive = int(os.getenv("GUNICORN_KEEPALIVE", 5))

# The reverse proxy (Railway/AWS ALB) sets X-Forwarded-*
forwarded_allow_ips = "*"

# ==============================================================================
# LOGGING (stdout/stderr for containers)
# ==============================================================================
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
access_log_format = '%(h)s %(t)s "%(r)s" %(s)s %(b)s %(D)s rid=%({x-request-id}o)s'

preload_app = True


def on_starting(server):
    server.log.info(f"Starting {proc_name}: {workers} x {worker_class} on port {port}")


def on_exit(server):
    server.log.info(f"{proc_name} shutting down")
