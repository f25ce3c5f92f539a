"""Exception taxonomy for the automation engine."""


class AutomationError(Exception):
    """Base class for automation engine errors."""

    pass


class RuleValidationError(AutomationError):
    """Raised when a rule cannot be applied (bad anchor, no template/channel).

    Fails only the rule it belongs to; never aborts a batch.
    """

    pass


class UnknownRuleTypeError(RuleValidationError):
    """Raised when a rule's anchor kind is outside the supported set."""

    def __init__(self, anchor: object) -> None:
        super().__init__(f"Unknown rule type: {anchor}")
        self.anchor = anchor


class TransientExternalError(AutomationError):
    """Raised when the store or an external service is temporarily unreachable."""

    pass


class ReservationNotFoundError(AutomationError):
    """Raised when an operation targets a reservation that does not exist."""

    pass
