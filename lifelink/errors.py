"""Expected outcomes raised by the core to its caller.

Persistence failures are deliberately not part of this hierarchy: SQLAlchemy
errors propagate untouched and are treated as generic failures upstream.
"""


class LifeLinkError(Exception):
    """Base for every expected, user-facing failure."""


class NotFoundError(LifeLinkError, LookupError):
    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class IneligibleError(LifeLinkError):
    """The eligibility evaluator rejected the pairing; ``reason`` is shown as is."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class ConflictError(LifeLinkError):
    pass


class InvalidTransitionError(LifeLinkError, ValueError):
    pass


class ValidationError(LifeLinkError, ValueError):
    pass


class PermissionDeniedError(LifeLinkError):
    pass
