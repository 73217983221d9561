"""Domain errors raised by the entity store and query engine."""


class TopologyError(Exception):
    """Base class for expected, record-level failures."""


class ValidationError(TopologyError):
    """A field is malformed or out of range."""


class AlreadyExistsError(TopologyError):
    """A natural key or (route, direction, order) slot is already taken."""

    def __init__(self, kind: str, key, message: str = None):
        self.kind = kind
        self.key = key
        super().__init__(message or f"{kind} already exists: {key}")


class ReferenceNotFoundError(TopologyError):
    """A link references a route or stop that does not exist."""

    def __init__(self, kind: str, key, message: str = None):
        self.kind = kind
        self.key = key
        super().__init__(message or f"Referenced {kind} not found: {key}")


class NotFoundError(TopologyError):
    """Lookup by id found nothing."""

    def __init__(self, kind: str, key, message: str = None):
        self.kind = kind
        self.key = key
        super().__init__(message or f"{kind} not found: {key}")
