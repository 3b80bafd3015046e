# repochat/core/errors.py
from typing import Optional


class RepoChatError(Exception):
    """Base class for errors surfaced to the user."""


class InvalidRepositoryError(RepoChatError, ValueError):
    def __init__(self, message: str = "Invalid GitHub URL. Please enter a valid repository URL."):
        super().__init__(message)


class RepositoryFetchError(RepoChatError):
    def __init__(self, message: str = "Failed to fetch repository information."):
        super().__init__(message)


class RepositoryNotFoundError(RepositoryFetchError):
    def __init__(self, message: str = "Repository not found. Please check the URL and try again."):
        super().__init__(message)


class RateLimitError(RepositoryFetchError):
    def __init__(self, message: str = "GitHub API rate limit exceeded. Please try again later or add a GitHub token."):
        super().__init__(message)


class UnauthorizedError(RepositoryFetchError):
    def __init__(self, message: str = "This repository is private. Please use a public repository or provide authentication."):
        super().__init__(message)


class NoCredentialError(RepoChatError):
    def __init__(self, message: str = "No AI API key configured. Please set OPENAI_API_KEY or ANTHROPIC_API_KEY."):
        super().__init__(message)


class ProviderHTTPError(RepoChatError):
    """Non-2xx response from a completion provider."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StreamReadError(RepoChatError):
    """Transport failure while reading a streamed response body."""


class TranscriptBusyError(RepoChatError):
    def __init__(self, message: str = "A response is still streaming. Wait for it to finish first."):
        super().__init__(message)
