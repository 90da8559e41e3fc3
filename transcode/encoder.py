import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from django.conf import settings

from .errors import EncodeFailed, EncodeTimeout
from .utils import CONTAINER_MUXERS, normalize_format

logger = logging.getLogger(__name__)

# Keep the tail of ffmpeg's stderr; the head is just the banner and stream map
DIAGNOSTIC_TAIL_CHARS = 4000


@dataclass(frozen=True)
class EncodeProfile:
    max_width: int = 1280
    max_height: int = 720
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    video_bitrate: str = "1000k"
    max_rate: str = "1500k"
    buffer_size: str = "3000k"
    audio_bitrate: str = "128k"
    preset: str = "medium"
    crf: int = 23
    threads: int = 2

    def scale_filter(self) -> str:
        # cap at max_width x max_height, keep aspect, never upscale, even dimensions for yuv420p
        return (
            f"scale=w='min({self.max_width},iw)':h='min({self.max_height},ih)'"
            ":force_original_aspect_ratio=decrease:force_divisible_by=2"
        )


# Applied to every transcode; not user-configurable
PROFILE_720P = EncodeProfile()


class EncodeInvoker:
    """Runs ffmpeg as a child process: one local file in, one local file out."""

    def __init__(self, binary: str = "ffmpeg", profile: EncodeProfile = PROFILE_720P, timeout: float = 600):
        self.binary = binary
        self.profile = profile
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "EncodeInvoker":
        return cls(
            binary=settings.FFMPEG_BINARY,
            timeout=settings.TRANSCODE_ENCODE_TIMEOUT_SECONDS,
        )

    def build_command(self, input_path: Path, output_path: Path, fmt: str) -> list[str]:
        fmt = normalize_format(fmt)
        p = self.profile
        return [
            self.binary,
            "-y",
            "-hide_banner",
            "-nostdin",
            "-nostats",
            "-loglevel", "error",
            "-i", str(input_path),
            "-vf", p.scale_filter(),
            "-c:v", p.video_codec,
            "-preset", p.preset,
            "-crf", str(p.crf),
            "-b:v", p.video_bitrate,
            "-maxrate", p.max_rate,
            "-bufsize", p.buffer_size,
            "-c:a", p.audio_codec,
            "-b:a", p.audio_bitrate,
            "-threads", str(p.threads),
            "-f", CONTAINER_MUXERS[fmt],
            str(output_path),
        ]

    def encode(self, input_path: Path, output_path: Path, fmt: str) -> None:
        cmd = self.build_command(input_path, output_path, fmt)
        logger.info("Encoding %s -> %s (%s)", input_path, output_path, fmt)
        try:
            # run() kills the child before re-raising TimeoutExpired
            subprocess.run(
                cmd,
                check=True,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as e:
            err = e.stderr.decode("utf-8", errors="ignore") if e.stderr else str(e)
            raise EncodeFailed(e.returncode, err[-DIAGNOSTIC_TAIL_CHARS:]) from e
        except subprocess.TimeoutExpired as e:
            raise EncodeTimeout(self.timeout) from e
        except OSError as e:
            # binary missing or not executable
            raise EncodeFailed(None, f"could not start {self.binary}: {e}") from e

        if not Path(output_path).is_file():
            raise EncodeFailed(0, f"encoder exited cleanly but wrote no output at {output_path}")
