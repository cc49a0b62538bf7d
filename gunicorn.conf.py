import os
import sys

# Add src directory to Python path so 'fair_charge' package can be found
sys.path.append(os.path.join(os.getcwd(), 'src'))

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# The rule index and embedding model live in each worker; keep the worker count small.
workers = int(os.environ.get('GUNICORN_WORKERS', '1'))
threads = int(os.environ.get('GUNICORN_THREADS', '4'))
worker_class = "gthread"
worker_tmp_dir = "/dev/shm"

# Each worker builds its own pipeline after fork.
preload_app = False
accesslog = "-"
errorlog = "-"
loglevel = "info"
timeout = 60
wsgi_app = "fair_charge.api.server:app"
