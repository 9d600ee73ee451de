"""Gunicorn configuration for the print-shop operations console."""
import os

bind = os.getenv("GUNICORN_BIND", "0.0.0.0:5000")

# Conversion claims make concurrent workers safe; keep the default small.
workers = int(os.getenv("GUNICORN_WORKERS", "2"))

accesslog = os.getenv("GUNICORN_ACCESS_LOGFILE", "-")
errorlog = os.getenv("GUNICORN_ERROR_LOGFILE", "-")

forwarded_allow_ips = os.getenv("GUNICORN_FORWARDED_ALLOW_IPS", "*")
