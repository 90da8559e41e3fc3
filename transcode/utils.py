import os, mimetypes
from pathlib import PurePosixPath

from .errors import UnsupportedFormat

# Containers the fixed H.264/AAC profile can be muxed into, mapped to ffmpeg's -f name
CONTAINER_MUXERS = {
    "mp4": "mp4",
    "mov": "mov",
    "mkv": "matroska",
    "avi": "avi",
}
ALLOWED_FORMATS = frozenset(CONTAINER_MUXERS)

CONTENT_TYPES = {
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "mkv": "video/x-matroska",
    "avi": "video/x-msvideo",
}


def normalize_format(fmt: str) -> str:
    """Lower-case and validate a target container name."""
    value = (fmt or "").strip().lower().lstrip(".")
    if value not in ALLOWED_FORMATS:
        raise UnsupportedFormat(f"Unsupported format {fmt!r}. Allowed: {sorted(ALLOWED_FORMATS)}")
    return value


def safe_name(filename: str) -> str:
    """Strip any client-supplied directories from an upload name."""
    name = os.path.basename((filename or "").replace("\\", "/"))
    return name or "upload"


def input_key(job_id, original_name: str) -> str:
    return f"uploads/{job_id}_{safe_name(original_name)}"


def output_key(job_id, original_name: str, fmt: str) -> str:
    """
    Same job, name and format always give the same key, so a retried
    upload simply overwrites the previous attempt's object.
    """
    stem = PurePosixPath(safe_name(original_name)).stem
    return f"transcoded/{job_id}_{stem}.{normalize_format(fmt)}"


def content_type_for(fmt: str) -> str:
    return CONTENT_TYPES.get(fmt) or mimetypes.guess_type(f"x.{fmt}")[0] or "application/octet-stream"


def guess_kind(path: str) -> str:
    """Return 'image' | 'video' | 'audio' | 'other' based on mimetype/extension."""
    mime, _ = mimetypes.guess_type(path)
    if not mime:
        return "other"
    for kind in ("image", "video", "audio"):
        if mime.startswith(f"{kind}/"):
            return kind
    return "other"
