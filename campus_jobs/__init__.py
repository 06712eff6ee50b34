"""Celery worker for periodic campus booking maintenance."""
