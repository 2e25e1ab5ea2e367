"""Scan task workers and Celery maintenance tasks."""
