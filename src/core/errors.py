"""
Typed failures raised by the organizer core.

Every expected failure derives from OrganizerError so callers (the Flask
layer, the CLI) can catch one base class and report ``error.code``.
"""


class OrganizerError(Exception):
    code = 'organizer_error'

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'success': False, 'error': self.message, 'code': self.code}


class ValidationError(OrganizerError):
    """Input rejected; state unchanged."""
    code = 'validation_error'


class MinimumCourtViolation(ValidationError):
    """Removing a court would leave the event with none."""
    code = 'minimum_court_violation'


class IncompleteEventError(ValidationError):
    """Event was loaded without any courts (partial save)."""
    code = 'incomplete_event'


class NotFoundError(OrganizerError):
    code = 'not_found'


class PlayerNotFound(NotFoundError):
    code = 'player_not_found'


class CourtNotFound(NotFoundError):
    code = 'court_not_found'


class EventNotFound(NotFoundError):
    code = 'event_not_found'


class AlreadyCancelled(OrganizerError):
    """The player was already cancelled. Nothing changed."""
    code = 'already_cancelled'


class PermissionDenied(OrganizerError):
    code = 'permission_denied'


class CapacityInvariantViolation(OrganizerError):
    """More Registered players than max_players. This is a bug, not user input."""
    code = 'capacity_invariant_violation'


class PersistenceFailure(OrganizerError):
    """The backing store failed. The in-memory state is still valid."""
    code = 'persistence_failure'
