"""Error taxonomy for the assessment engine.

Integrity errors (sessions, ownership, storage availability) propagate to the
caller. Collaborator errors are raised only inside adapters and are turned into
degraded results by the collaborator gateway before they reach a user flow.
"""


class AssessmentError(Exception):
    """Base class for all engine errors."""

    code = "ASSESSMENT_ERROR"


class SessionNotFound(AssessmentError):
    """No session exists for the owner and session id."""

    code = "SESSION_NOT_FOUND"


class SessionExpired(AssessmentError):
    """The session is past its inactivity horizon or already completed."""

    code = "SESSION_EXPIRED"


class StageLocked(AssessmentError):
    """Stage data was written after the stage was marked complete."""

    code = "STAGE_LOCKED"


class NoQuotaAvailable(AssessmentError):
    """The owner has no remaining assessment attempts."""

    code = "NO_TESTS_AVAILABLE"


class ResourceNotFound(AssessmentError):
    """Artifact is missing or belongs to another owner."""

    code = "RESOURCE_NOT_FOUND"


class StorageTransient(AssessmentError):
    """Backing store timed out; the request may be retried."""

    code = "STORAGE_UNAVAILABLE"


class CollaboratorError(AssessmentError):
    """Base class for content, speech and evaluation collaborator failures."""


class GenerationFailed(CollaboratorError):
    """Content generation failed."""

    code = "GENERATION_FAILED"


class SynthesisFailed(CollaboratorError):
    """Speech synthesis failed."""

    code = "SYNTHESIS_FAILED"


class EvaluationFailed(CollaboratorError):
    """Answer evaluation failed."""

    code = "EVALUATION_FAILED"
