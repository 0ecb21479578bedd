from typing import Optional


class RegistrationError(Exception):
    """Base class for errors surfaced to API callers as structured JSON."""

    status_code = 500

    def __init__(self, message: str, detail: Optional[str] = None, **extra):
        self.message = message
        self.detail = detail
        self.extra = extra
        super().__init__(detail or message)

    def to_dict(self) -> dict:
        body = {'message': self.message}
        if self.detail:
            body['error'] = self.detail
        body.update(self.extra)
        return body


class ValidationError(RegistrationError):
    status_code = 400


class NotFoundError(RegistrationError):
    status_code = 404


class AccessDeniedError(RegistrationError):
    status_code = 403


class ConflictError(RegistrationError):
    # Closed hackathon, team size out of bounds, duplicate membership
    status_code = 400


def invalid_team_size(minimum: int, maximum: int) -> ConflictError:
    return ConflictError(
        'Invalid team size',
        f'Team size must be between {minimum} and {maximum}.',
        minimum_team_size=minimum,
        maximum_team_size=maximum,
    )


def already_registered() -> ConflictError:
    return ConflictError(
        'Already registered',
        'One or more members are already registered for this hackathon.',
    )
