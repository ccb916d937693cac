"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register a handler once and get
consistent HTTP status codes and machine codes everywhere. Every failure of
the generative backend is converted to one of the ``ClarityError`` types at
the operation boundary, so callers never see provider exceptions.

Usage:
    from roleclarity.core.exceptions import InputTooShort, RoleNotFound

    raise InputTooShort(length=12, minimum=20)
    raise RoleNotFound(role_id=42)
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Args:
        resource: Human-readable entity name (e.g. "Role", "ClaritySession").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation races with another writer or violates uniqueness."""

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(f"{resource} with {field}={value!r} conflicts with current state")


# ── Clarity taxonomy ─────────────────────────────────────────────────────────


class ClarityError(Exception):
    """Base for every error the clarity engine surfaces.

    Attributes:
        code: Machine-readable ERR_* code returned in the JSON body.
        status: Default HTTP status for the blueprint error handler.
        retryable: Whether the caller should offer a retry affordance.
    """

    code = "ERR_CLARITY"
    status = 400
    retryable = False

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class InputTooShort(ClarityError):
    code = "ERR_INPUT_TOO_SHORT"
    status = 400
    retryable = True

    def __init__(self, length: int, minimum: int) -> None:
        self.length = length
        self.minimum = minimum
        super().__init__(
            f"Input has {length} meaningful characters; at least {minimum} are required",
            details={"length": length, "minimum": minimum},
        )


class InvalidURL(ClarityError):
    code = "ERR_INVALID_URL"
    status = 400
    retryable = True

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Could not use URL {url!r}: {reason}", details={"url": url})


class ExtractionFailed(ClarityError):
    """Generation error or schema mismatch while extracting. Nothing is persisted."""

    code = "ERR_EXTRACTION_FAILED"
    status = 502
    retryable = True


class ComparisonFailed(ClarityError):
    """Generation/schema error while comparing, or an integrity error underneath.

    ``cause`` carries the wrapped integrity error (e.g. RoleNotFound) when the
    failure was not upstream; the blueprint then answers with its status.
    """

    code = "ERR_COMPARISON_FAILED"
    status = 502
    retryable = True

    def __init__(self, message: str, *, cause: Exception | None = None, details: dict | None = None) -> None:
        self.cause = cause
        super().__init__(message, details=details)
        if isinstance(cause, ClarityError):
            self.status = cause.status
            self.details.setdefault("cause", cause.code)


class AnalysisFailed(ClarityError):
    """Generation/schema error in the overlap or handoff narrative step."""

    code = "ERR_ANALYSIS_FAILED"
    status = 502
    retryable = True


class InsufficientData(ClarityError):
    code = "ERR_INSUFFICIENT_DATA"
    status = 422


class RoleNotFound(NotFoundError, ClarityError):
    code = "ERR_ROLE_NOT_FOUND"
    status = 404

    def __init__(self, role_id: int | None) -> None:
        NotFoundError.__init__(self, "Role", role_id)
        self.details = {"role_id": role_id}


class SessionNotFound(NotFoundError, ClarityError):
    code = "ERR_SESSION_NOT_FOUND"
    status = 404

    def __init__(self, session_id: int | None) -> None:
        NotFoundError.__init__(self, "ClaritySession", session_id)
        self.details = {"session_id": session_id}


class ProposalNotFound(NotFoundError, ClarityError):
    code = "ERR_PROPOSAL_NOT_FOUND"
    status = 404

    def __init__(self, proposal_id: int | None) -> None:
        NotFoundError.__init__(self, "ClarityProposal", proposal_id)
        self.details = {"proposal_id": proposal_id}


class AlreadyResolved(ConflictError, ClarityError):
    """A proposal lost the race to another resolution. Surfaced as a no-op."""

    code = "ERR_ALREADY_RESOLVED"
    status = 409

    def __init__(self, proposal_id: int, status: str | None = None) -> None:
        ConflictError.__init__(self, "ClarityProposal", "status", status)
        self.proposal_id = proposal_id
        self.current_status = status
        self.details = {"proposal_id": proposal_id, "status": status}


Conflict = AlreadyResolved


class MutationFailed(ClarityError):
    """The entity store rejected the write; the proposal is still pending."""

    code = "ERR_MUTATION_FAILED"
    status = 500
    retryable = True


class InvalidTransition(ClarityError):
    code = "ERR_INVALID_TRANSITION"
    status = 409

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot move session from '{current}' to '{target}'",
            details={"current": current, "target": target},
        )


class ConfirmationRequired(ClarityError):
    """Removing a member that is referenced elsewhere needs an explicit confirm."""

    code = "ERR_CONFIRMATION_REQUIRED"
    status = 409

    def __init__(self, message: str, *, references: list[dict]) -> None:
        self.references = references
        super().__init__(message, details={"references": references})
