"""
Typed Exception Hierarchy for the Citation Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (typically an HTTP layer) map kernel failures onto status codes.
Parsing message strings for that is fragile, so every failure:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE attribute (machine-readable, API-safe)
  3. Carries structured DATA (not just a message string)

    try:
        desk.submit_contest(citation_id, reason, actor)
    except NotContestableError as e:
        api_response(409, code=e.code, status=e.status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CitationKernelError (base)
    |
    +-- NotFoundError
    |   +-- ViolationRuleNotFoundError
    |   +-- CitationNotFoundError
    |   +-- ContestNotFoundError
    |   +-- DriverNotFoundError
    |   +-- VehicleNotFoundError
    |
    +-- ValidationError
    |   +-- ScheduleValidationError
    |
    +-- ConflictError
    |   +-- DuplicateOpenContestError
    |   +-- CitationAlreadyVoidedError
    |   +-- CitationNotPayableError
    |   +-- CitationNotEditableError
    |   +-- InvalidCitationTransitionError
    |   +-- InvalidContestTransitionError
    |   +-- RuleVersionConflictError
    |   +-- RuleAlreadyRetiredError
    |   +-- DuplicateRuleCodeError
    |
    +-- NotContestableError
    +-- AlreadyResolvedError
    |   +-- ContestAlreadyResolvedError
    +-- InvalidScheduleError
    +-- ForbiddenError
    |   +-- WithdrawalNotPermittedError
    |
    +-- ConcurrencyError
    |   +-- RetryableConflictError
    |       +-- SequenceContentionError
    |       +-- OffenseHistoryContentionError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- SequenceExhaustedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|--------------------------------------
NotFound        | VIOLATION_RULE_NOT_FOUND      | No current rule for code/id
                | CITATION_NOT_FOUND            | Citation id/number doesn't exist
                | CONTEST_NOT_FOUND             | Contest id doesn't exist
                | DRIVER_NOT_FOUND              | Registry rejected the driver
                | VEHICLE_NOT_FOUND             | Registry rejected the vehicle
----------------|-------------------------------|--------------------------------------
Validation      | VALIDATION_ERROR              | Missing/malformed input fields
                | SCHEDULE_VALIDATION_ERROR     | Malformed fine schedule
----------------|-------------------------------|--------------------------------------
Conflict        | DUPLICATE_OPEN_CONTEST        | Citation already has an open contest
                | CITATION_ALREADY_VOIDED       | Void on a void citation
                | CITATION_NOT_PAYABLE          | Payment on contested/settled citation
                | CITATION_NOT_EDITABLE         | Update on a void citation
                | INVALID_CITATION_TRANSITION   | Transition not in the state table
                | INVALID_CONTEST_TRANSITION    | Transition not in the state table
                | RULE_VERSION_CONFLICT         | Predecessor no longer chain head
                | RULE_ALREADY_RETIRED          | Deactivating a retired rule
                | DUPLICATE_RULE_CODE           | Code already current in another group
----------------|-------------------------------|--------------------------------------
Workflow        | NOT_CONTESTABLE               | Citation PAID / VOID / DISMISSED
                | CONTEST_ALREADY_RESOLVED      | Contest already terminal
                | INVALID_SCHEDULE              | No fine defined for the axes
                | WITHDRAWAL_NOT_PERMITTED      | Withdrawal by non-submitter
----------------|-------------------------------|--------------------------------------
Retryable       | SEQUENCE_CONTENTION           | Document counter contention
                | OFFENSE_HISTORY_CONTENTION    | Offense ordinal lock contention
----------------|-------------------------------|--------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Modifying an append-only record
Sequence        | SEQUENCE_EXHAUSTED            | Yearly counter exceeded its width

RetryableConflictError is deliberately NOT a ConflictError: business
conflicts must not be retried, contention may be.
"""

from typing import Any


class CitationKernelError(Exception):
    """
    Base exception for all citation kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "CITATION_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(CitationKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class ViolationRuleNotFoundError(NotFoundError):
    """No current violation rule matches the given code or id."""

    code: str = "VIOLATION_RULE_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Violation rule not found: {reference}")


class CitationNotFoundError(NotFoundError):
    """Citation with given id or number was not found."""

    code: str = "CITATION_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Citation not found: {reference}")


class ContestNotFoundError(NotFoundError):
    """Contest with given id was not found."""

    code: str = "CONTEST_NOT_FOUND"

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__(f"Contest not found: {reference}")


class DriverNotFoundError(NotFoundError):
    """The party registry does not know the driver."""

    code: str = "DRIVER_NOT_FOUND"

    def __init__(self, driver_id: str):
        self.driver_id = driver_id
        super().__init__(f"Driver not found: {driver_id}")


class VehicleNotFoundError(NotFoundError):
    """The party registry does not know the vehicle."""

    code: str = "VEHICLE_NOT_FOUND"

    def __init__(self, vehicle_id: str):
        self.vehicle_id = vehicle_id
        super().__init__(f"Vehicle not found: {vehicle_id}")


# Validation exceptions


class ValidationError(CitationKernelError):
    """
    Malformed or missing input.

    field_errors maps each offending field to a human-readable message so
    the caller can surface per-field feedback.
    """

    code: str = "VALIDATION_ERROR"

    def __init__(self, field_errors: dict[str, str]):
        self.field_errors = dict(field_errors)
        summary = "; ".join(f"{k}: {v}" for k, v in sorted(self.field_errors.items()))
        super().__init__(f"Validation failed: {summary}")


class ScheduleValidationError(ValidationError):
    """A fine schedule payload is structurally invalid."""

    code: str = "SCHEDULE_VALIDATION_ERROR"


# Conflict exceptions


class ConflictError(CitationKernelError):
    """Base exception for business-rule conflicts. Never retried."""

    code: str = "CONFLICT"


class DuplicateOpenContestError(ConflictError):
    """The citation already has a contest in SUBMITTED or UNDER_REVIEW."""

    code: str = "DUPLICATE_OPEN_CONTEST"

    def __init__(self, citation_id: str, open_contest_no: str | None = None):
        self.citation_id = citation_id
        self.open_contest_no = open_contest_no
        super().__init__(
            f"Citation {citation_id} already has an open contest"
            + (f" ({open_contest_no})" if open_contest_no else "")
        )


class CitationAlreadyVoidedError(ConflictError):
    """Void requested for a citation that is already void."""

    code: str = "CITATION_ALREADY_VOIDED"

    def __init__(self, citation_no: str):
        self.citation_no = citation_no
        super().__init__(f"Citation {citation_no} is already void")


class CitationNotPayableError(ConflictError):
    """Payment recorded against a citation that cannot accept one."""

    code: str = "CITATION_NOT_PAYABLE"

    def __init__(self, citation_no: str, status: str):
        self.citation_no = citation_no
        self.status = status
        super().__init__(
            f"Citation {citation_no} cannot accept payment in status {status}"
        )


class CitationNotEditableError(ConflictError):
    """Mutable fields of a void citation cannot be updated."""

    code: str = "CITATION_NOT_EDITABLE"

    def __init__(self, citation_no: str, reason: str):
        self.citation_no = citation_no
        self.reason = reason
        super().__init__(f"Citation {citation_no} cannot be edited: {reason}")


class InvalidCitationTransitionError(ConflictError):
    """Citation status transition is not in the transition table."""

    code: str = "INVALID_CITATION_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid citation transition: {from_status} -> {to_status}"
        )


class InvalidContestTransitionError(ConflictError):
    """Contest status transition is not in the transition table."""

    code: str = "INVALID_CONTEST_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid contest transition: {from_status} -> {to_status}"
        )


class RuleVersionConflictError(ConflictError):
    """A new version was requested from a rule that is no longer the chain head."""

    code: str = "RULE_VERSION_CONFLICT"

    def __init__(self, group_id: str, version: int, reason: str):
        self.group_id = group_id
        self.version = version
        self.reason = reason
        super().__init__(
            f"Cannot supersede version {version} of rule group {group_id}: {reason}"
        )


class RuleAlreadyRetiredError(ConflictError):
    """Deactivation requested for a rule that is already retired."""

    code: str = "RULE_ALREADY_RETIRED"

    def __init__(self, rule_id: str, code: str):
        self.rule_id = rule_id
        self.rule_code = code
        super().__init__(f"Violation rule {code} ({rule_id}) is already retired")


class DuplicateRuleCodeError(ConflictError):
    """Another rule group already has a current rule with this code."""

    code: str = "DUPLICATE_RULE_CODE"

    def __init__(self, rule_code: str, existing_group_id: str):
        self.rule_code = rule_code
        self.existing_group_id = existing_group_id
        super().__init__(
            f"Violation code {rule_code!r} is already defined by group {existing_group_id}"
        )


# Workflow exceptions


class NotContestableError(CitationKernelError):
    """The citation is PAID, VOID or DISMISSED and cannot be contested."""

    code: str = "NOT_CONTESTABLE"

    def __init__(self, citation_no: str, status: str):
        self.citation_no = citation_no
        self.status = status
        super().__init__(
            f"Citation {citation_no} cannot be contested in status {status}"
        )


class AlreadyResolvedError(CitationKernelError):
    """Base exception for operations on an already terminal workflow."""

    code: str = "ALREADY_RESOLVED"


class ContestAlreadyResolvedError(AlreadyResolvedError):
    """Contest is already APPROVED, REJECTED or WITHDRAWN."""

    code: str = "CONTEST_ALREADY_RESOLVED"

    def __init__(self, contest_no: str, status: str):
        self.contest_no = contest_no
        self.status = status
        super().__init__(f"Contest {contest_no} is already {status}")


class InvalidScheduleError(CitationKernelError):
    """The fine schedule defines no amount for the requested axes."""

    code: str = "INVALID_SCHEDULE"

    def __init__(self, rule_code: str, owner_class: str, offender_role: str):
        self.rule_code = rule_code
        self.owner_class = owner_class
        self.offender_role = offender_role
        super().__init__(
            f"Violation {rule_code} defines no fine for "
            f"{owner_class}/{offender_role}"
        )


class ForbiddenError(CitationKernelError):
    """Base exception for actor-permission failures."""

    code: str = "FORBIDDEN"


class WithdrawalNotPermittedError(ForbiddenError):
    """Only the original submitter may withdraw a contest."""

    code: str = "WITHDRAWAL_NOT_PERMITTED"

    def __init__(self, contest_no: str, actor_id: str):
        self.contest_no = contest_no
        self.actor_id = actor_id
        super().__init__(
            f"Actor {actor_id} is not the submitter of contest {contest_no}"
        )


# Concurrency exceptions


class ConcurrencyError(CitationKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class RetryableConflictError(ConcurrencyError):
    """
    Transient contention on a serialized resource.

    The caller's transaction must be rolled back; the whole operation may
    then be retried.
    """

    code: str = "RETRYABLE_CONFLICT"

    def __init__(self, resource: str, detail: Any = None):
        self.resource = resource
        self.detail = detail
        super().__init__(
            f"Contention on {resource}; retry the operation"
            + (f" ({detail})" if detail else "")
        )


class SequenceContentionError(RetryableConflictError):
    """The document number counter could not be allocated."""

    code: str = "SEQUENCE_CONTENTION"


class OffenseHistoryContentionError(RetryableConflictError):
    """The per-driver offense history lock could not be obtained."""

    code: str = "OFFENSE_HISTORY_CONTENTION"


# Immutability exceptions


class ImmutabilityError(CitationKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Published rule schedules, citation violation lines, payments and
    contest status history are immutable after creation.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class SequenceExhaustedError(CitationKernelError):
    """A yearly document counter ran past its fixed width."""

    code: str = "SEQUENCE_EXHAUSTED"

    def __init__(self, sequence_name: str, width: int):
        self.sequence_name = sequence_name
        self.width = width
        super().__init__(
            f"Sequence {sequence_name} exceeded {width} digits"
        )
