"""
Error kinds raised by the ClawWorld core.

Every error carries a stable ``code`` that API clients can switch on, the
HTTP status the API renders it with, and, for user-correctable failures,
the ``next_step`` the caller should take.

Verification failures are returned to callers as part of a registration
result rather than raised; the classes below still describe them so both
paths render the same codes.
"""
from typing import Optional


class ClawWorldError(Exception):
    """Base class for all core errors"""

    code = "internal_error"
    status_code = 500
    next_step: Optional[str] = None

    def __init__(self, message: str = "", next_step: Optional[str] = None):
        default = (self.__class__.__doc__ or self.code).strip().splitlines()[0]
        super().__init__(message or default)
        if next_step is not None:
            self.next_step = next_step

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        body = {"success": False, "error": self.code, "message": self.message}
        if self.next_step:
            body["nextStep"] = self.next_step
        return body


class InvalidRequest(ClawWorldError):
    """Request parameters are invalid"""

    code = "invalid_request"
    status_code = 400


class NameTooShort(InvalidRequest):
    """Name required (min 2 chars)"""

    code = "name_too_short"


class BotNotFound(ClawWorldError):
    """Bot not found"""

    code = "bot_not_found"
    status_code = 404


class VerificationFailed(ClawWorldError):
    """Challenge verification failed"""

    code = "verification_failed"
    status_code = 403
    next_step = "Request new challenge: POST /challenge with name"


class ChallengeNotFound(VerificationFailed):
    """Challenge expired or invalid"""

    code = "challenge_not_found"


class ChallengeExpired(VerificationFailed):
    """Challenge expired"""

    code = "challenge_expired"


class ChallengeAnswerRejected(VerificationFailed):
    """Answer insufficient. Provide more context and reasoning."""

    code = "challenge_answer_rejected"


class InsufficientBalance(ClawWorldError):
    """Insufficient balance"""

    code = "insufficient_balance"
    status_code = 400

    def __init__(self, balance: float, needed: float):
        super().__init__(f"Insufficient balance. Have: {balance}, Need: {needed}")
        self.balance = balance
        self.needed = needed


class LedgerSubmissionError(ClawWorldError):
    """Ledger rejected the transaction"""

    code = "ledger_submission_error"
    status_code = 502


class LedgerTimeout(LedgerSubmissionError):
    """
    Ledger did not confirm the transaction in time.

    The transaction was submitted and may still land; ``signature`` lets the
    caller look it up before deciding to resubmit.
    """

    code = "ledger_timeout"
    status_code = 504

    def __init__(self, message: str = "", signature: Optional[str] = None):
        super().__init__(message)
        self.signature = signature


class WalletUnconfigured(ClawWorldError):
    """Hot wallet not configured"""

    code = "wallet_unconfigured"
    status_code = 503


class RecordStoreError(ClawWorldError):
    """Record store request failed"""

    code = "record_store_error"
    status_code = 502


class OperationPending(ClawWorldError):
    """Operation is still running and will finish in the background"""

    code = "operation_pending"
    status_code = 202


class SealedSecretError(ClawWorldError):
    """Stored wallet secret could not be unsealed"""

    code = "sealed_secret_error"
    status_code = 500
