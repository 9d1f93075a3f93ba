"""Error types raised across CommitScope."""


class CommitScopeError(Exception):
    """Base class for all CommitScope errors."""


class GitServiceError(CommitScopeError):
    """Raised by the repository layer when an operation cannot proceed."""


class MissingInput(GitServiceError):
    """A required url or directory was not supplied."""


class InvalidRef(GitServiceError):
    """A ref name that git would misread or reject."""


class RepositoryNotFound(GitServiceError):
    """The target directory does not exist."""


class NotADirectory(GitServiceError):
    """The target path exists but is a file."""


class NotARepository(GitServiceError):
    """The target directory has no resolvable HEAD."""


class ProviderError(CommitScopeError):
    """An AI backend rejected a request or reported an error mid-stream."""


class ChatRequestError(CommitScopeError):
    """The relay answered a chat or analysis request with an error status."""

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code} {detail}".strip())


def is_input_error(error: Exception) -> bool:
    """Whether an error should be reported to the caller as a 400."""
    return isinstance(error, (MissingInput, InvalidRef))
