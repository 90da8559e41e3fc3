import logging
from uuid import uuid4

from rest_framework import status, views
from rest_framework.response import Response

from . import pipeline
from .errors import Busy, Conflict, NotFound, StorageNotFound, StorageUnavailable
from .models import Job
from .s3 import ObjectStager
from .utils import guess_kind, input_key, safe_name

from .serializers import (
    UploadCreateSerializer,
    JobSerializer,
    TranscodeRequestSerializer,
    StatusSerializer,
    DownloadSerializer,
)

logger = logging.getLogger(__name__)


def _error(e: Exception, http_status: int) -> Response:
    return Response({"detail": str(e)}, status=http_status)


class UploadView(views.APIView):
    """
    Streams a multipart upload to S3 under uploads/<id>_<name> and records
    the job as 'uploaded'. Transcoding is requested separately.
    """

    def post(self, request):
        ser = UploadCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        upload = ser.validated_data["video"]

        name = safe_name(upload.name)
        if guess_kind(name) not in ("video", "audio"):
            return Response({"detail": "Unsupported file type. Upload a video or audio file."}, status=400)

        job_id = uuid4()
        key = input_key(job_id, name)
        try:
            ObjectStager.from_settings().put_fileobj(upload, key, content_type=upload.content_type)
        except StorageUnavailable as e:
            logger.error("Upload of %s failed: %s", name, e)
            return _error(e, status.HTTP_503_SERVICE_UNAVAILABLE)

        job = Job.objects.create(
            id=job_id,
            owner=request.user.get_username(),
            original_name=name,
            source_key=key,
        )
        logger.info("Stored upload %s for %s as %s", name, job.owner, key)
        return Response({"id": str(job.id), "message": "File uploaded"}, status=status.HTTP_201_CREATED)


class TranscodeView(views.APIView):
    def post(self, request):
        ser = TranscodeRequestSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        job_id = ser.validated_data["id"]

        try:
            pipeline.request_transcode(job_id, request.user.get_username(), ser.validated_data["format"])
        except NotFound as e:
            return _error(e, status.HTTP_404_NOT_FOUND)
        except Conflict as e:
            return _error(e, status.HTTP_409_CONFLICT)
        except Busy as e:
            return _error(e, status.HTTP_503_SERVICE_UNAVAILABLE)

        return Response({"id": str(job_id), "message": "Transcoding started"}, status=status.HTTP_202_ACCEPTED)


class JobListView(views.APIView):
    def get(self, request):
        jobs = Job.objects.filter(owner=request.user.get_username())
        return Response(JobSerializer(jobs, many=True).data)


class JobDetailView(views.APIView):
    def get(self, request, job_id):
        try:
            job = pipeline.get_job(job_id, request.user.get_username())
        except NotFound as e:
            return _error(e, status.HTTP_404_NOT_FOUND)
        return Response(JobSerializer(job).data)


class JobStatusView(views.APIView):
    def get(self, request, job_id):
        try:
            current = pipeline.get_status(job_id, request.user.get_username())
        except NotFound as e:
            return _error(e, status.HTTP_404_NOT_FOUND)
        return Response(StatusSerializer({"status": current}).data)


class DownloadView(views.APIView):
    """Time-limited URL for the transcoded file, or the original until the transcode completes."""

    def get(self, request, job_id):
        try:
            url = pipeline.download_handle(job_id, request.user.get_username(), ObjectStager.from_settings())
        except (NotFound, StorageNotFound) as e:
            return _error(e, status.HTTP_404_NOT_FOUND)
        except StorageUnavailable as e:
            logger.error("Download handle for job %s failed: %s", job_id, e)
            return _error(e, status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response(DownloadSerializer({"download_url": url}).data)
