from bazaar_jobs.models.audit_log import AuditLog
from bazaar_jobs.models.notification import Notification, PushToken
from bazaar_jobs.models.privacy import ConsentRecord, DeletionRequest
from bazaar_jobs.models.project import Collaborator, Idea, PendingInvitation, Project, Upvote
from bazaar_jobs.models.upload import Upload
from bazaar_jobs.models.user import RefreshToken, User

__all__ = [
    "AuditLog",
    "Collaborator",
    "ConsentRecord",
    "DeletionRequest",
    "Idea",
    "Notification",
    "PendingInvitation",
    "Project",
    "PushToken",
    "RefreshToken",
    "Upload",
    "Upvote",
    "User",
]
