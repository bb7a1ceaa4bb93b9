"""
Exception hierarchy for docklock.

Every failure that should stop a generate, rewrite or verify run derives from
DockerLockError so the CLI can report it and exit non-zero.
"""


class DockerLockError(Exception):
    """Base class for all docklock errors"""
    pass


class ConfigurationError(DockerLockError):
    """Raised for invalid flags or settings, before any I/O happens"""
    pass


class CollectionError(DockerLockError):
    """Raised when candidate files cannot be collected"""
    pass


class ParseError(DockerLockError):
    """Raised when a file cannot be parsed for image references"""
    pass


class DockerfileParseError(ParseError):
    pass


class ComposefileParseError(ParseError):
    pass


class KubernetesfileParseError(ParseError):
    pass


class RegistryError(DockerLockError):
    """Raised when a registry cannot return a digest for an image"""
    pass


class LockfileError(DockerLockError):
    """Raised when a lockfile cannot be read, parsed or written"""
    pass


class RewriteError(DockerLockError):
    """Raised when files cannot be rewritten with digests"""
    pass


class ImageCountMismatchError(RewriteError):
    """Raised when a file and the lockfile disagree on how many images it has"""

    def __init__(self, path: str, found: int, expected: int):
        self.path = path
        self.found = found
        self.expected = expected
        if found > expected:
            detail = "more images exist in the file than in the lockfile"
        else:
            detail = "fewer images exist in the file than in the lockfile"
        super().__init__(
            f"'{path}': {detail} (found {found}, lockfile has {expected})"
        )


class RenameError(RewriteError):
    """Raised when committing a rewritten file fails; carries rollback failures"""

    def __init__(self, path: str, cause: Exception, rollback_errors=None):
        self.path = path
        self.cause = cause
        self.rollback_errors = list(rollback_errors or [])
        message = f"failed to rename rewritten file onto '{path}': {cause}"
        if self.rollback_errors:
            failures = "; ".join(str(e) for e in self.rollback_errors)
            message = f"{message}; rollback failed: {failures}"
        super().__init__(message)


class LockfileDifferenceError(DockerLockError):
    """Raised by verify when a regenerated lockfile differs from the existing one"""

    def __init__(self, message: str, kind=None, path=None, field=None):
        self.kind = kind
        self.path = path
        self.field = field
        super().__init__(message)
