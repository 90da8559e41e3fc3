import uuid
from django.db import models
from django.db.models import Q

class Job(models.Model):
    class Status(models.TextChoices):
        UPLOADED = "uploaded"
        PROCESSING = "processing"
        COMPLETED = "completed"
        ERROR = "error"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.CharField(max_length=150, db_index=True)     # username of the uploader
    original_name = models.CharField(max_length=255)
    source_key = models.CharField(max_length=512)               # uploads/<id>_<name>
    result_key = models.CharField(max_length=512, blank=True, default="")  # set only when completed
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.UPLOADED, db_index=True)
    format = models.CharField(max_length=16, blank=True, default="")
    # bumped by every claim; a worker only finalizes the attempt it was handed
    attempt = models.PositiveIntegerField(default=0)
    # set when a worker actually begins the attempt; null while it waits in the queue
    started_at = models.DateTimeField(null=True, blank=True)
    error = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    (Q(status="completed") & ~Q(result_key=""))
                    | (~Q(status="completed") & Q(result_key=""))
                ),
                name="transcode_job_result_iff_completed",
            ),
        ]

    def __str__(self):
        return f"{self.id} {self.status} {self.format or '-'}"
