"""
Error taxonomy for the transcode pipeline.

NotFound / Conflict / Busy / UnsupportedFormat are raised synchronously to
whoever asks for a transcode. Everything under PipelineError happens inside
the worker continuation and is recorded on the job instead of re-raised.
"""


class TranscodeError(Exception):
    """Base class for every error this app raises on purpose."""


class NotFound(TranscodeError):
    """Job does not exist or belongs to someone else."""


class Conflict(TranscodeError):
    """Job is not in a claimable state."""


class Busy(TranscodeError):
    """Admission gate is full; too many jobs are already processing."""


class UnsupportedFormat(TranscodeError):
    pass


class PipelineError(TranscodeError):
    """A fault during stage-in, encode or stage-out."""


class StorageError(PipelineError):
    pass


class StorageUnavailable(StorageError):
    pass


class StorageNotFound(StorageError):
    pass


class StagingIOError(PipelineError):
    """Local filesystem failure while moving bytes to or from scratch."""


class EncodeFailed(PipelineError):
    def __init__(self, returncode, diagnostic: str):
        self.returncode = returncode
        self.diagnostic = diagnostic
        super().__init__(f"encoder exited with {returncode}: {diagnostic}")


class EncodeTimeout(PipelineError):
    def __init__(self, seconds: float):
        self.seconds = seconds
        super().__init__(f"encoder timed out after {seconds}s")
