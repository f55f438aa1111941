from __future__ import annotations


class NotFound(KeyError):
    def __init__(self, what: str) -> None:
        super().__init__(what)
        self.what = what

    def __str__(self) -> str:
        return f"{self.what} not found"


class InvalidTransition(ValueError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move session from {current} to {target}")
        self.current = current
        self.target = target


class SessionClosed(ValueError):
    pass


class ValidationFailed(ValueError):
    pass


class Forbidden(PermissionError):
    pass


class NotParticipant(Forbidden):
    pass


class NotOwner(Forbidden):
    pass


DOMAIN_ERRORS = (NotFound, InvalidTransition, SessionClosed, ValidationFailed, Forbidden)
