"""
Shared FastAPI dependencies.

The clock, job queue and notification dispatcher are created once in the
application lifespan and stored on app.state; tests override these
providers instead of patching modules.
"""

from fastapi import Depends, Request

from .config import JOB_MAX_ATTEMPTS
from .domain.scheduling.scheduler import JobScheduler


def get_clock(request: Request):
    return request.app.state.clock


def get_dispatcher(request: Request):
    return request.app.state.dispatcher


def get_job_queue(request: Request):
    return request.app.state.job_queue


def get_scheduler(queue=Depends(get_job_queue), clock=Depends(get_clock)) -> JobScheduler:
    return JobScheduler(queue, clock, JOB_MAX_ATTEMPTS)
