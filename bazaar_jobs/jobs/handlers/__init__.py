from bazaar_jobs.jobs.handlers.audit_logs import (
    create_anonymize_audit_logs_job,
    create_delete_audit_logs_job,
)
from bazaar_jobs.jobs.handlers.cleanup_invitations import create_cleanup_invitations_job
from bazaar_jobs.jobs.handlers.cleanup_orphaned_files import create_cleanup_orphaned_files_job
from bazaar_jobs.jobs.handlers.cleanup_push_tokens import create_cleanup_push_tokens_job
from bazaar_jobs.jobs.handlers.finalize_deletions import create_finalize_deletions_job
from bazaar_jobs.jobs.handlers.recalculate_karma import create_recalculate_karma_job

__all__ = [
    "create_anonymize_audit_logs_job",
    "create_cleanup_invitations_job",
    "create_cleanup_orphaned_files_job",
    "create_cleanup_push_tokens_job",
    "create_delete_audit_logs_job",
    "create_finalize_deletions_job",
    "create_recalculate_karma_job",
]
