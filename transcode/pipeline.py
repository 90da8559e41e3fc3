"""
Transcode orchestration.

request_transcode() runs in the web process: it checks the admission gate,
claims the job with a single conditional UPDATE and hands the rest to a
Celery task. run_transcode() is that task's body: stage in, encode, stage
out, and record exactly one terminal status for the attempt it was given.
"""
import logging
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.db.models import F, Q
from django.utils import timezone

from .encoder import EncodeInvoker
from .errors import Busy, Conflict, NotFound, PipelineError
from .models import Job
from .s3 import ObjectStager
from .scratch import ScratchSpace
from .utils import content_type_for, normalize_format, output_key

logger = logging.getLogger(__name__)

ERROR_MAX_CHARS = 4000


@dataclass
class PipelineContext:
    stager: ObjectStager
    encoder: EncodeInvoker
    scratch: ScratchSpace

    @classmethod
    def from_settings(cls) -> "PipelineContext":
        return cls(
            stager=ObjectStager.from_settings(),
            encoder=EncodeInvoker.from_settings(),
            scratch=ScratchSpace(settings.TRANSCODE_SCRATCH_ROOT),
        )


def _dispatch(job_id, attempt: int):
    from .tasks import transcode_job

    return transcode_job.delay(str(job_id), attempt)


def _claimable(fmt: str) -> Q:
    # a failed attempt may be retried, but only into the format it already chose
    return Q(status=Job.Status.UPLOADED) | Q(status=Job.Status.ERROR, format=fmt)


def request_transcode(job_id, owner: str, fmt: str, dispatch=None):
    """
    Claim job_id for owner and queue its transcode.

    Returns the Celery AsyncResult for the queued attempt. Raises NotFound,
    Conflict, Busy or UnsupportedFormat; never waits on staging or encoding.
    """
    fmt = normalize_format(fmt)

    in_flight = Job.objects.filter(status=Job.Status.PROCESSING).count()
    if in_flight >= settings.TRANSCODE_MAX_IN_FLIGHT:
        raise Busy(f"{in_flight} transcodes already in flight")

    claimed = (
        Job.objects.filter(pk=job_id, owner=owner)
        .filter(_claimable(fmt))
        .update(
            status=Job.Status.PROCESSING,
            format=fmt,
            result_key="",
            error="",
            attempt=F("attempt") + 1,
            started_at=None,
            updated_at=timezone.now(),
        )
    )
    if not claimed:
        current = Job.objects.filter(pk=job_id, owner=owner).values_list("status", "format").first()
        if current is None:
            raise NotFound(f"job {job_id} not found")
        status, existing_fmt = current
        if status == Job.Status.ERROR and existing_fmt != fmt:
            raise Conflict(f"job {job_id} was requested as {existing_fmt}; format cannot change")
        raise Conflict(f"job {job_id} is {status}")

    # nobody else can touch the row until this attempt finishes
    attempt = Job.objects.values_list("attempt", flat=True).get(pk=job_id)
    logger.info("Claimed job %s attempt %d for %s (%s)", job_id, attempt, owner, fmt)

    try:
        return (dispatch or _dispatch)(job_id, attempt)
    except Exception as e:
        _finish(job_id, attempt, Job.Status.ERROR, error=f"could not queue transcode: {e}")
        raise


def _finish(job_id, attempt: int, status, *, result_key: str = "", fmt: str | None = None, error: str = "") -> bool:
    """Terminal update for one attempt; a no-op if that attempt is no longer processing."""
    fields = {
        "status": status,
        "result_key": result_key,
        "error": error[:ERROR_MAX_CHARS],
        "updated_at": timezone.now(),
    }
    if fmt:
        fields["format"] = fmt
    updated = Job.objects.filter(
        pk=job_id, status=Job.Status.PROCESSING, attempt=attempt
    ).update(**fields)
    if not updated:
        logger.warning("Job %s attempt %d was no longer processing; %s not recorded", job_id, attempt, status)
    return bool(updated)


def run_transcode(job_id, attempt: int, ctx: PipelineContext) -> str:
    """
    Worker side of a claimed transcode. Returns the status it recorded.

    Pipeline faults are recorded on the job and swallowed here; anything
    unexpected is recorded too and then re-raised for Celery.
    """
    now = timezone.now()
    started = Job.objects.filter(
        pk=job_id, status=Job.Status.PROCESSING, attempt=attempt, started_at__isnull=True
    ).update(started_at=now, updated_at=now)
    if not started:
        current = Job.objects.filter(pk=job_id).values_list("status", flat=True).first()
        logger.warning("Skipping job %s attempt %d: not the active processing attempt", job_id, attempt)
        return current or ""
    job = Job.objects.get(pk=job_id)

    key = output_key(job.id, job.original_name, job.format)
    failure = None
    crash = None
    with ctx.scratch.session(job.id, job.format) as paths:
        try:
            ctx.stager.fetch_to_local(job.source_key, paths.input_path)
            ctx.encoder.encode(paths.input_path, paths.output_path, job.format)
            ctx.stager.push_from_local(paths.output_path, key, content_type_for(job.format))
        except PipelineError as e:
            logger.error("Transcode of job %s failed: %s", job.id, e)
            failure = str(e)
        except Exception as e:
            logger.exception("Transcode of job %s crashed", job.id)
            failure = str(e) or e.__class__.__name__
            crash = e

    # terminal status is only written once scratch is gone
    if failure is not None:
        _finish(job.id, attempt, Job.Status.ERROR, error=failure)
        if crash is not None:
            raise crash
        return Job.Status.ERROR

    if not _finish(job.id, attempt, Job.Status.COMPLETED, result_key=key, fmt=job.format):
        return Job.objects.values_list("status", flat=True).get(pk=job.id)
    logger.info("Transcode of job %s completed: %s", job.id, key)
    return Job.Status.COMPLETED


def get_status(job_id, owner: str) -> str:
    status = Job.objects.filter(pk=job_id, owner=owner).values_list("status", flat=True).first()
    if status is None:
        raise NotFound(f"job {job_id} not found")
    return Job.Status(status)


def get_job(job_id, owner: str) -> Job:
    job = Job.objects.filter(pk=job_id, owner=owner).first()
    if job is None:
        raise NotFound(f"job {job_id} not found")
    return job


def download_handle(job_id, owner: str, stager: ObjectStager, ttl: int | None = None) -> str:
    """Short-lived URL for the result once completed, otherwise for the source upload."""
    job = get_job(job_id, owner)
    key = job.result_key if job.status == Job.Status.COMPLETED else job.source_key
    return stager.signed_retrieval_handle(key, ttl or settings.TRANSCODE_DOWNLOAD_TTL_SECONDS)


def reap_stale_jobs(max_age_seconds: float, queued_max_age_seconds: float) -> int:
    """
    Fail processing jobs that will never finish. Returns how many were reaped.

    A started attempt is stale once it has run longer than max_age_seconds.
    An attempt still waiting for a worker gets queued_max_age_seconds,
    counted from its claim, since a full queue legitimately holds it for
    several encode timeouts.
    """
    now = timezone.now()
    started_cutoff = now - timedelta(seconds=max_age_seconds)
    queued_cutoff = now - timedelta(seconds=queued_max_age_seconds)
    processing = Job.objects.filter(status=Job.Status.PROCESSING)

    reaped = processing.filter(started_at__lt=started_cutoff).update(
        status=Job.Status.ERROR,
        result_key="",
        error=f"worker did not finish within {int(max_age_seconds)}s",
        updated_at=now,
    )
    reaped += processing.filter(started_at__isnull=True, updated_at__lt=queued_cutoff).update(
        status=Job.Status.ERROR,
        result_key="",
        error=f"no worker picked the job up within {int(queued_max_age_seconds)}s",
        updated_at=now,
    )
    if reaped:
        logger.warning("Marked %d stale processing job(s) as error", reaped)
    return reaped
