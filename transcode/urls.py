from django.urls import path
from .views import UploadView, TranscodeView, JobListView, JobDetailView, JobStatusView, DownloadView

urlpatterns = [
    path("upload/", UploadView.as_view(), name="upload"),
    path("transcode/", TranscodeView.as_view(), name="transcode"),
    path("videos/", JobListView.as_view(), name="job_list"),
    path("videos/<uuid:job_id>/", JobDetailView.as_view(), name="job_detail"),
    path("videos/<uuid:job_id>/status/", JobStatusView.as_view(), name="job_status"),
    path("download/<uuid:job_id>/", DownloadView.as_view(), name="download"),
]
