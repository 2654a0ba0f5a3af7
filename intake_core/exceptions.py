"""Exception hierarchy for the referral intake service."""

from typing import Any


class ReferralIntakeError(Exception):
    """Base exception for all referral intake errors."""


class NotAReferral(ReferralIntakeError):
    """Inbound message has no referral keywords or no patient name.

    Non-fatal: the orchestrator reports it as ``success=False``.
    """

    def __init__(self, message_id: str) -> None:
        super().__init__("not a referral")
        self.message_id = message_id


class ConfigurationError(ReferralIntakeError):
    """Agency criteria or service configuration is invalid.

    Fatal for the invocation; never silently replaced by defaults.
    """


class DownstreamFailure(ReferralIntakeError):
    """A collaborator (notifier, store, geocoder, ledger) failed.

    Non-fatal to a computed decision; reported through ``errors``.
    """

    def __init__(self, collaborator: str, message: str) -> None:
        super().__init__(f"{collaborator}: {message}")
        self.collaborator = collaborator


class DuplicateMessage(ReferralIntakeError):
    """Idempotency key was already processed.

    Carries the stored ProcessingResult, which is served instead of
    processing the message again.
    """

    def __init__(self, message_id: str, result: Any) -> None:
        super().__init__(f"Message {message_id} already processed")
        self.message_id = message_id
        self.result = result
