class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class PresentationNotFoundError(DomainError):
    """Raised when a presentation id does not exist."""

    pass


class PresentationNotReadyError(DomainError):
    """Raised when a presentation lacks the outlines or layout needed to generate."""

    pass


class PersistenceError(DomainError):
    """Raised when the final replace-all write of generated slides fails."""

    pass
