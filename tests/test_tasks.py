import os
import time
from datetime import timedelta

import pytest
from django.utils import timezone

from transcode import tasks
from transcode.models import Job
from transcode.pipeline import PipelineContext

pytestmark = pytest.mark.django_db


def test_transcode_task_runs_pipeline_with_context_from_settings(make_job, ctx, stager, monkeypatch):
    job = make_job()
    Job.objects.filter(pk=job.pk).update(status=Job.Status.PROCESSING, format="mp4", attempt=1)
    monkeypatch.setattr(PipelineContext, "from_settings", lambda: ctx)

    result = tasks.transcode_job.apply(args=(str(job.id), 1)).get()

    job.refresh_from_db()
    assert result == Job.Status.COMPLETED
    assert job.status == Job.Status.COMPLETED
    assert job.result_key in stager.objects


def test_worker_startup_recovers_stale_jobs_and_scratch(make_job, settings, tmp_path):
    settings.TRANSCODE_SCRATCH_ROOT = tmp_path / "scratch"
    settings.TRANSCODE_SCRATCH_MAX_AGE_SECONDS = 60
    settings.TRANSCODE_STALE_JOB_SECONDS = 60
    settings.TRANSCODE_SCRATCH_ROOT.mkdir()
    orphan = settings.TRANSCODE_SCRATCH_ROOT / "orphan_input"
    orphan.write_bytes(b"x")
    an_hour_ago = time.time() - 60 * 60
    os.utime(orphan, (an_hour_ago, an_hour_ago))

    ten_minutes_ago = timezone.now() - timedelta(minutes=10)
    job = make_job(status=Job.Status.PROCESSING, format="mp4", attempt=1, started_at=ten_minutes_ago)
    Job.objects.filter(pk=job.pk).update(updated_at=ten_minutes_ago)

    tasks.recover_on_startup(sender=None)

    job.refresh_from_db()
    assert job.status == Job.Status.ERROR
    assert list(settings.TRANSCODE_SCRATCH_ROOT.iterdir()) == []
