"""Infrastructure errors raised by the secure-access core.

StoreUnavailable and AdvisorUnavailable are always recovered by the caller
(logged, never surfaced to the recipient). Validation failures are not
exceptions; see AccessGate's ValidationResult.
"""


class StoreUnavailable(Exception):
    """The event store could not durably append an audit event."""


class AdvisorUnavailable(Exception):
    """The reasoning service could not produce a decision (unconfigured, timeout, bad payload)."""
