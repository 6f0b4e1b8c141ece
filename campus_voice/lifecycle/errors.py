from typing import Iterable


class ComplaintError(Exception):
    """Base class for every failure the complaint lifecycle reports."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ComplaintError):
    pass


class InvalidTransition(ComplaintError):
    def __init__(
        self,
        current: str,
        action: str,
        required_roles: Iterable[str] = (),
        message: str | None = None,
    ):
        self.current = current
        self.action = action
        self.required_roles = tuple(required_roles)
        if message is None:
            roles = ", ".join(self.required_roles) or "(none)"
            message = (
                f"Cannot {action} a complaint that is {current}. "
                f"Required role: {roles}"
            )
        super().__init__(message)


class InvalidState(InvalidTransition):
    pass


class Unauthorized(ComplaintError):
    pass


class AlreadySubmitted(ComplaintError):
    pass


class AlreadyAccepted(ComplaintError):
    pass


class ConflictError(ComplaintError):
    pass


class NotFound(ComplaintError):
    pass
