from rest_framework import serializers
from .errors import UnsupportedFormat
from .models import Job
from .utils import normalize_format


class JobSerializer(serializers.ModelSerializer):
    class Meta:
        model = Job
        fields = [
            "id",
            "owner",
            "original_name",
            "status",
            "format",
            "error",
            "created_at",
            "updated_at",
        ]


class UploadCreateSerializer(serializers.Serializer):
    video = serializers.FileField()


class TranscodeRequestSerializer(serializers.Serializer):
    id = serializers.UUIDField()
    format = serializers.CharField()

    def validate_format(self, value):
        """
        Accept 'MP4', '.mp4' and friends; reject containers the fixed
        H.264/AAC profile cannot be written into.
        """
        try:
            return normalize_format(value)
        except UnsupportedFormat as e:
            raise serializers.ValidationError(str(e))


class StatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Job.Status.choices)


class DownloadSerializer(serializers.Serializer):
    download_url = serializers.URLField()
