"""
LGPD enumerations for data-subject requests and consents.
"""

import enum


class DataRequestType(str, enum.Enum):
    DATA_PORTABILITY = "data_portability"
    DATA_ERASURE = "data_erasure"
    DATA_ACCESS = "data_access"
    DATA_CORRECTION = "data_correction"
    CONSENT_REVOCATION = "consent_revocation"


class DataRequestStatus(str, enum.Enum):
    """
    Data request status.

    Status flow:
        pending → processing → completed | failed
        pending | processing → cancelled | expired
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ConsentType(str, enum.Enum):
    BASIC_DATA_PROCESSING = "basic_data_processing"
    MARKETING_COMMUNICATIONS = "marketing_communications"
    ANALYTICS_AND_IMPROVEMENTS = "analytics_and_improvements"
    THIRD_PARTY_SHARING = "third_party_sharing"
    LOCATION_TRACKING = "location_tracking"
    PUSH_NOTIFICATIONS = "push_notifications"
