"""Server data archives."""

import asyncio
import hashlib
from pathlib import Path
import tarfile

import structlog

from shared.contracts import BackupReport

from .errors import PanelRequestError
from .panel_client import PanelClient

logger = structlog.get_logger()

CHUNK_SIZE = 1024 * 1024


def write_archive(source: Path, target: Path) -> tuple[str, int]:
    """Write `source` as a gzipped tarball at `target`.

    Returns (`sha256:<hex>`, size in bytes). Blocking.
    """
    if not source.is_dir():
        raise FileNotFoundError(f"Server data directory {source} does not exist")
    target.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(target, "w:gz") as archive:
        archive.add(source, arcname=".")

    digest = hashlib.sha256()
    with target.open("rb") as f:
        while chunk := f.read(CHUNK_SIZE):
            digest.update(chunk)
    return f"sha256:{digest.hexdigest()}", target.stat().st_size


class BackupArchiver:
    def __init__(self, data_path: str, backup_path: str, panel: PanelClient):
        self.data_path = Path(data_path)
        self.backup_path = Path(backup_path)
        self.panel = panel

    def archive_path(self, server_id: str, backup_id: str) -> Path:
        return self.backup_path / server_id / f"{backup_id}.tar.gz"

    async def archive(self, server_id: str, backup_id: str) -> BackupReport:
        target = self.archive_path(server_id, backup_id)
        try:
            checksum, size = await asyncio.to_thread(
                write_archive, self.data_path / server_id, target
            )
        except (OSError, tarfile.TarError) as e:
            logger.error(
                "backup_failed",
                server_id=server_id,
                backup_id=backup_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            target.unlink(missing_ok=True)
            return BackupReport(successful=False, error=str(e))

        logger.info(
            "backup_completed", server_id=server_id, backup_id=backup_id, size=size
        )
        return BackupReport(successful=True, checksum=checksum, size=size)

    async def run(self, server_id: str, backup_id: str) -> BackupReport:
        """Archive, then tell the panel how it went."""
        report = await self.archive(server_id, backup_id)
        try:
            await self.panel.report_backup(backup_id, report)
        except PanelRequestError as e:
            logger.error("backup_report_failed", backup_id=backup_id, error=e.message)
        return report
