"""Exceptions raised by the activity analytics domain."""


class InvalidDependencyError(ValueError):
    """Raised at construction time when a required collaborator is missing."""


def require_dependency(value, name: str):
    """Return ``value`` unchanged, or raise InvalidDependencyError if it is None."""
    if value is None:
        raise InvalidDependencyError(f"{name} must not be None")
    return value
