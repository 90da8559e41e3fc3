import logging

from celery import shared_task
from celery.signals import worker_ready
from django.conf import settings

from .pipeline import PipelineContext, reap_stale_jobs as _reap_stale_jobs, run_transcode
from .scratch import ScratchSpace

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    acks_late=False,
    # backstops above the encoder's own timeout; the soft limit raises inside run_transcode
    soft_time_limit=settings.TRANSCODE_ENCODE_TIMEOUT_SECONDS + 120,
    time_limit=settings.TRANSCODE_ENCODE_TIMEOUT_SECONDS + 180,
)
def transcode_job(self, job_id: str, attempt: int):
    logger.info("Worker %s picked up job %s attempt %d", self.request.hostname, job_id, attempt)
    return run_transcode(job_id, attempt, PipelineContext.from_settings())


@shared_task
def reap_stale_jobs():
    return _reap_stale_jobs(settings.TRANSCODE_STALE_JOB_SECONDS, settings.TRANSCODE_QUEUED_JOB_SECONDS)


@shared_task
def sweep_scratch():
    return ScratchSpace(settings.TRANSCODE_SCRATCH_ROOT).sweep(settings.TRANSCODE_SCRATCH_MAX_AGE_SECONDS)


@worker_ready.connect
def recover_on_startup(**kwargs):
    """A fresh worker cleans up after whatever crashed before it."""
    try:
        sweep_scratch()
        reap_stale_jobs()
    except Exception:
        logger.exception("Startup recovery failed")
