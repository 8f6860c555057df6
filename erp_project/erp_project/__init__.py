# Load the Celery app whenever Django starts, so @shared_task binds to it
from .celery import celery_app

__all__ = ("celery_app",)

""" Workers run with "celery -A erp_project worker -l info" """
