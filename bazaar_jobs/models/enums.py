import enum

# Stored as VARCHAR columns, same as the rest of the platform schema.


class CollaboratorRole(str, enum.Enum):
    CREATOR = "creator"
    CONTRIBUTOR = "contributor"
    ADVISOR = "advisor"


class DeletionRequestStatus(str, enum.Enum):
    PENDING = "pending"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class ConsentType(str, enum.Enum):
    TERMS_OF_SERVICE = "terms_of_service"
    PRIVACY_POLICY = "privacy_policy"
    MARKETING = "marketing"
    DATA_PROCESSING = "data_processing"
