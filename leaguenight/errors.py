"""Typed failures for the league-night session engine.

Every service raises one of these; the app error handler turns them into
the ``{'success': False, 'error': ...}`` envelope with the matching status
code. The client package raises the same classes when it decodes a failure
response, so callers on both sides handle one taxonomy.
"""


class LeagueNightError(Exception):
    status_code = 500
    default_code = 'Unexpected'
    default_message = 'Something went wrong'

    def __init__(self, message=None, code=None, details=None):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        body = {'success': False, 'error': self.message, 'code': self.code}
        if self.details:
            body['details'] = self.details
        return body


class ValidationError(LeagueNightError):
    status_code = 400
    default_code = 'InvalidInput'
    default_message = 'Invalid request'


class NotFoundError(LeagueNightError):
    status_code = 404
    default_code = 'NotFound'
    default_message = 'Not found'


class ForbiddenError(LeagueNightError):
    status_code = 403
    default_code = 'Forbidden'
    default_message = "You can't do that"


class AuthenticationError(ForbiddenError):
    """Missing, expired or unknown bearer token."""
    status_code = 401
    default_code = 'Unauthorized'
    default_message = 'Authentication required'


class ConflictError(LeagueNightError):
    status_code = 409
    default_code = 'Conflict'
    default_message = 'Someone else already did this'


class TransportError(LeagueNightError):
    """Realtime or HTTP transport failure on the client side."""
    status_code = 503
    default_code = 'TransportError'
    default_message = 'Connection to the league night server failed'


class JoinRefusedError(TransportError):
    """The server answered ``join_night`` with ``joined: False``; retrying will not help."""
    status_code = 403
    default_code = 'JoinRefused'
    default_message = 'The server refused to join this league night'


# Conflict messages keyed by code. Phrased from the caller's point of view:
# the action lost a race or repeats something already done.
CONFLICT_MESSAGES = {
    'AlreadyCheckedIn': 'You are already checked in for this night',
    'PartnershipActive': 'Remove your partnership before doing that',
    'DuplicateRequest': 'A partnership request between you two is already pending',
    'AlreadyPartnered': 'Someone already partnered up before this went through',
    'NotPending': 'Someone else already responded to this',
    'AlreadyPending': 'A score has already been submitted for this match',
    'CourtOccupied': 'Someone else already assigned that court',
    'AlreadyMember': 'You are already a member of this league',
}


def conflict(code, details=None):
    return ConflictError(CONFLICT_MESSAGES.get(code), code=code, details=details)


def forbidden(code='Forbidden'):
    return ForbiddenError(code=code)


def error_for_status(status_code, message=None, code=None):
    """Map an HTTP failure back onto the taxonomy (client side)."""
    for cls in (ValidationError, ForbiddenError, NotFoundError, ConflictError):
        if cls.status_code == status_code:
            return cls(message, code=code)
    if status_code == AuthenticationError.status_code:
        return AuthenticationError(message, code=code)
    return LeagueNightError(message, code=code)
