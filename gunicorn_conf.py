import os

# Gunicorn configuration file
# For FastAPI/Uvicorn, we use the UvicornWorker

# Bind to all interfaces on port 5000
bind = os.getenv("BIND", "0.0.0.0:5000")

# Worker configuration
# One process: the circuit breaker and idle timer are per-process state,
# and the idle timer shuts the whole process down.
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"

# Timeout and Keepalive
timeout = 120
keepalive = 5
graceful_timeout = 30

# Logging
accesslog = "-" # Log to stdout
errorlog = "-"  # Log to stderr
loglevel = os.getenv("LOG_LEVEL", "info").lower()

# Process management
name = "team_task_tracker_api"
reload = False  # Set to True for development only
