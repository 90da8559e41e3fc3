import logging
import secrets
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScratchPaths:
    input_path: Path
    output_path: Path

    def all(self) -> tuple[Path, Path]:
        return (self.input_path, self.output_path)


class ScratchSpace:
    """
    Local working area for in-flight transcodes.

    Every path handed out by allocate() is namespaced by job id plus a random
    token, so two attempts of the same job never collide. Callers should use
    session() so paths are released on every exit.
    """

    def __init__(self, root):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def allocate(self, job_id, fmt: str) -> ScratchPaths:
        prefix = f"{job_id}_{secrets.token_hex(4)}"
        return ScratchPaths(
            input_path=self.root / f"{prefix}_input",
            output_path=self.root / f"{prefix}_output.{fmt}",
        )

    def release(self, *paths) -> None:
        """Best-effort delete; missing files are fine, other failures are only logged."""
        for p in paths:
            p = Path(p)
            for candidate in (p, p.with_name(p.name + ".part")):
                try:
                    candidate.unlink(missing_ok=True)
                except OSError as e:
                    logger.warning("Could not remove scratch file %s: %s", candidate, e)

    @contextmanager
    def session(self, job_id, fmt: str):
        paths = self.allocate(job_id, fmt)
        try:
            yield paths
        finally:
            self.release(*paths.all())

    def sweep(self, max_age_seconds: float) -> int:
        """Remove files left behind by crashed workers. Returns how many were deleted."""
        cutoff = time.time() - max_age_seconds
        removed = 0
        for p in self.root.iterdir():
            try:
                if p.is_file() and p.stat().st_mtime < cutoff:
                    p.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning("Could not sweep scratch file %s: %s", p, e)
        if removed:
            logger.info("Swept %d orphaned scratch file(s) from %s", removed, self.root)
        return removed
