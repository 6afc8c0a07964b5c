import asyncio
from pathlib import Path
from urllib.parse import urlparse

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bazaar_jobs.jobs.types import JobDefinition, JobResult
from bazaar_jobs.metrics import RETENTION_RECORDS_AFFECTED
from bazaar_jobs.models.project import Project
from bazaar_jobs.models.upload import Upload
from bazaar_jobs.models.user import User
from bazaar_jobs.retention import ORPHANED_UPLOADS, aged_uploads

JOB_NAME = "cleanup-orphaned-files"
MAX_REPORTED_ERRORS = 10


def _extract_upload_name(url: str | None) -> str | None:
    """Filename an upload URL points at, or None for non-upload URLs.

    Examples:
        "/uploads/abc.png"                        -> "abc.png"
        "https://cdn.example.com/uploads/a.jpg?v" -> "a.jpg"
        "https://gravatar.com/avatar/123"         -> None
    """
    if not url:
        return None
    path = urlparse(url).path
    if "/uploads/" not in path:
        return None
    name = path.rsplit("/uploads/", 1)[1]
    return name or None


async def _collect_referenced_uploads(db: AsyncSession) -> set[str]:
    """Filenames referenced by a user avatar or a project image."""
    names: set[str] = set()

    rows = await db.execute(select(User.avatar_url).where(User.avatar_url.is_not(None)))
    for (url,) in rows:
        if name := _extract_upload_name(url):
            names.add(name)

    rows = await db.execute(select(Project.image_url).where(Project.image_url.is_not(None)))
    for (url,) in rows:
        if name := _extract_upload_name(url):
            names.add(name)

    return names


def _resolve_upload_path(root: Path, filename: str) -> Path:
    path = (root / filename).resolve()
    if not path.is_relative_to(root.resolve()):
        raise ValueError(f"upload path escapes the uploads directory: {filename!r}")
    return path


def create_cleanup_orphaned_files_job(
    session_factory: async_sessionmaker,
    logger,
    uploads_path: str | Path = "/tmp/uploads",
) -> JobDefinition:
    """Delete uploads older than 30 days that nothing references (daily, 04:00 UTC).

    A physical file that cannot be removed (already gone, permissions) is
    logged and its record is still deleted; a failure deleting the record is
    counted as an error and the run moves on to the next file.
    """
    log = logger.bind(job=JOB_NAME)
    root = Path(uploads_path)

    async def handler() -> JobResult:
        cutoff = ORPHANED_UPLOADS.cutoff()
        async with session_factory() as db:
            rows = await db.execute(
                select(Upload.id, Upload.filename).where(*aged_uploads(cutoff))
            )
            candidates = rows.all()
            referenced = await _collect_referenced_uploads(db)

            orphans = [(upload_id, name) for upload_id, name in candidates if name not in referenced]
            log.debug("orphaned_files_detected", checked=len(candidates), orphaned=len(orphans))

            deleted_records = deleted_files = 0
            errors: list[str] = []
            for upload_id, filename in orphans:
                try:
                    path = _resolve_upload_path(root, filename)
                    try:
                        # Blocking filesystem call kept off the event loop
                        await asyncio.to_thread(path.unlink)
                        deleted_files += 1
                    except OSError as exc:
                        log.warning("orphaned_file_unlink_failed", path=str(path), error=str(exc))

                    await db.execute(delete(Upload).where(Upload.id == upload_id))
                    await db.commit()
                    deleted_records += 1
                except Exception as exc:
                    await db.rollback()
                    errors.append(f"Failed to delete upload {upload_id}: {exc}")
                    log.exception("orphaned_file_error", upload_id=str(upload_id))

        RETENTION_RECORDS_AFFECTED.labels(job_name=JOB_NAME, action="deleted").inc(deleted_records)
        log.info(
            "orphaned_files_done",
            checked=len(candidates),
            orphaned=len(orphans),
            deleted_records=deleted_records,
            deleted_files=deleted_files,
            errors=len(errors),
        )
        details = {
            "checked_count": len(candidates),
            "orphaned_count": len(orphans),
            "deleted_records": deleted_records,
            "deleted_files": deleted_files,
            "cutoff": cutoff.isoformat(),
        }
        if errors:
            details["errors"] = errors[:MAX_REPORTED_ERRORS]
        return JobResult(
            success=not errors,
            message=f"Deleted {deleted_records} orphaned file records and {deleted_files} physical files",
            details=details,
        )

    return JobDefinition(
        name=JOB_NAME,
        description="Delete uploaded files not referenced by any entity older than 30 days",
        schedule="0 4 * * *",
        handler=handler,
    )
