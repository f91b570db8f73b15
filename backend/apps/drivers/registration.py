# apps/drivers/registration.py
"""
Pure rules of the onboarding step machine.

Nothing here touches the database: every function works on a
RegistrationSnapshot, so the ordering and gating rules can be exercised
without fixtures. Services build snapshots from Driver rows.
"""
from typing import NamedTuple, Optional

VERIFIED_PHONE = "verified_phone"
BASIC_INFO_COMPLETED = "basic_info_completed"
EARN_TYPE_COMPLETED = "earn_type_completed"
DOCUMENTS_UPLOADING = "documents_uploading"
COMPLETED = "completed"

STEP_ORDER = (
    VERIFIED_PHONE,
    BASIC_INFO_COMPLETED,
    EARN_TYPE_COMPLETED,
    DOCUMENTS_UPLOADING,
    COMPLETED,
)

DOCUMENT_TYPES = (
    "driversLicense",
    "profilePhoto",
    "socialInsuranceNumber",
    "vehicleRegistration",
    "vehicleInsurance",
)
REQUIRED_DOCUMENTS = ("driversLicense", "profilePhoto")

EARN_TYPES = ("car", "scooter", "bicycle", "truck")

# Allowed actions
COMPLETE_BASIC_INFO = "complete_basic_info"
SETUP_EARN_TYPE = "setup_earn_type"
UPLOAD_DOCUMENTS = "upload_documents"
COMPLETE_REGISTRATION = "complete_registration"

PROGRESS_PER_MILESTONE = 20


class RegistrationSnapshot(NamedTuple):
    stored_step: Optional[str]
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    earn_type: str = ""
    city: str = ""
    document_keys: frozenset = frozenset()
    verified: bool = False

    @classmethod
    def of(cls, driver):
        user = driver.user
        return cls(
            stored_step=driver.registration_step,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            earn_type=driver.earn_type,
            city=driver.city,
            document_keys=frozenset((driver.documents or {}).keys()),
            verified=driver.verified,
        )

    @property
    def has_basic_info(self):
        return bool(self.first_name and self.last_name and self.email)

    @property
    def has_earn_type(self):
        return bool(self.earn_type and self.city)

    @property
    def has_any_document(self):
        return bool(self.document_keys)

    @property
    def has_required_documents(self):
        return set(REQUIRED_DOCUMENTS) <= self.document_keys


def step_index(step):
    return STEP_ORDER.index(step) if step in STEP_ORDER else -1


def effective_step(stored_step, claimed_step=None):
    """
    The step in force: the later of what the record stores and what the
    presented token claims. Unknown values are ignored; with nothing usable
    the driver has, at minimum, verified their phone.
    """
    known = [s for s in (stored_step, claimed_step) if s in STEP_ORDER]
    if not known:
        return VERIFIED_PHONE
    return max(known, key=STEP_ORDER.index)


def steps_before(step):
    """Stored values a conditional advance to `step` may overwrite."""
    return STEP_ORDER[:STEP_ORDER.index(step)]


def next_step(step):
    idx = step_index(step)
    if idx < 0:
        return STEP_ORDER[0]
    if idx + 1 >= len(STEP_ORDER):
        return None
    return STEP_ORDER[idx + 1]


def missing_prerequisites(snapshot):
    """
    Everything FinalizeRegistration still needs, judged from field values
    only. The step label plays no part.
    """
    missing = []
    if not snapshot.first_name:
        missing.append("first_name")
    if not snapshot.last_name:
        missing.append("last_name")
    if not snapshot.email:
        missing.append("email")
    if not snapshot.earn_type:
        missing.append("earn_type")
    if not snapshot.city:
        missing.append("city")
    missing.extend(doc for doc in REQUIRED_DOCUMENTS if doc not in snapshot.document_keys)
    return missing


def allowed_actions(snapshot):
    actions = []
    if not snapshot.has_basic_info:
        actions.append(COMPLETE_BASIC_INFO)
    if not snapshot.has_earn_type:
        actions.append(SETUP_EARN_TYPE)
    if not snapshot.has_required_documents:
        actions.append(UPLOAD_DOCUMENTS)
    if not snapshot.verified and not missing_prerequisites(snapshot):
        actions.append(COMPLETE_REGISTRATION)
    return actions


def completed_milestones(snapshot):
    milestones = ["phone"]
    if snapshot.has_basic_info:
        milestones.append("basic_info")
    if snapshot.has_earn_type:
        milestones.append("earn_type")
    if snapshot.has_any_document:
        milestones.append("documents")
    if snapshot.verified:
        milestones.append("completion")
    return milestones


def progress(snapshot):
    return PROGRESS_PER_MILESTONE * len(completed_milestones(snapshot))
