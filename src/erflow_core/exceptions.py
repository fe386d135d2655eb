"""Error taxonomy for ER-Flow.

Store errors signal programming mistakes and abort the triggering operation.
Gateway errors are expected at runtime and must be handled at the call site.
"""

from typing import Optional


class ERFlowError(Exception):
    """Base class for all ER-Flow errors."""


# ============================================================
# Entity Store
# ============================================================

class StoreError(ERFlowError):
    """Base class for Entity Store failures."""


class DuplicateIdError(StoreError):
    """Raised when adding a case whose id is already stored."""

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Patient case already exists: {case_id}")


class NotFoundError(StoreError, KeyError):
    """Raised when a case id is not in the store."""

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Patient case not found: {case_id}")

    def __str__(self) -> str:
        return self.args[0]


class InvariantViolation(StoreError):
    """Raised when a replacement record breaks a PatientCase invariant."""


# ============================================================
# Status machine
# ============================================================

class InvalidTransition(ERFlowError, ValueError):
    """Raised for a status change that is not an edge of the workflow graph."""


class MalformedCaseError(ERFlowError):
    """A case lacks a field required by the rule evaluating it.

    Raised by transition rules and caught by the engine, which logs it and
    retries the case on a later tick.
    """


# ============================================================
# External Assessment Gateway
# ============================================================

class GatewayError(ERFlowError):
    """Base class for failed gateway calls."""


class GatewayUnavailableError(GatewayError):
    """Gateway could not be reached or answered with a server error."""


class RateLimitedError(GatewayError):
    """Gateway (or the local limiter) refused the request for now."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message)


class InvalidGatewayResponseError(GatewayError):
    """Gateway answered, but the answer could not be used."""
