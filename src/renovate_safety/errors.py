"""Custom exceptions for renovate-safety with user-friendly error messages."""


class RenovateSafetyError(Exception):
    """Base exception with user-friendly message and optional hint.

    Attributes:
        message: The main error message.
        hint: Optional hint for resolving the error.
    """

    def __init__(self, message: str, hint: str = "") -> None:
        """Initialize the exception.

        Args:
            message: The main error message.
            hint: Optional hint for resolving the error.
        """
        self.message = message
        self.hint = hint
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation."""
        if self.hint:
            return f"{self.message}\nHint: {self.hint}"
        return self.message


class NotFoundError(RenovateSafetyError):
    """Resource not found."""

    pass


class GitHubNotFoundError(NotFoundError):
    """GitHub repository or PR not found."""

    def __init__(
        self,
        repo: str = "",
        pr_number: int | None = None,
        message: str = "",
        hint: str = "",
    ) -> None:
        if not message:
            if repo and pr_number:
                message = f"GitHub PR #{pr_number} not found in repository '{repo}'"
            elif repo:
                message = f"GitHub repository '{repo}' not found"
            else:
                message = "GitHub resource not found"
        if not hint:
            hint = "Verify the repository (owner/repo) and PR number are correct."
        super().__init__(message, hint)


class GitHubAuthenticationError(RenovateSafetyError):
    """GitHub authentication failed."""

    def __init__(
        self,
        message: str = "GitHub authentication failed",
        hint: str = "Set GITHUB_TOKEN environment variable with 'repo' scope.",
    ) -> None:
        super().__init__(message, hint)


class SourceUnavailableError(RenovateSafetyError):
    """An evidence source could not be reached or answered with an error."""

    def __init__(
        self,
        service: str,
        original_error: Exception | None = None,
        message: str = "",
        hint: str = "",
    ) -> None:
        self.service = service
        self.original_error = original_error
        if not message:
            message = f"{service} is unavailable"
            if original_error:
                message += f": {original_error}"
        super().__init__(message, hint)


class NetworkError(SourceUnavailableError):
    """Network connectivity issue."""

    def __init__(
        self,
        service: str,
        original_error: Exception | None = None,
        message: str = "",
        hint: str = "",
    ) -> None:
        if not message:
            message = f"Failed to reach {service}"
            if original_error:
                message += f": {original_error}"
        if not hint:
            hint = "Check your internet connection and firewall settings."
        super().__init__(service, original_error, message, hint)


class RateLimitError(SourceUnavailableError):
    """API rate limit exceeded."""

    def __init__(
        self,
        service: str,
        retry_after: int | None = None,
        message: str = "",
        hint: str = "",
    ) -> None:
        self.retry_after = retry_after
        if not message:
            if retry_after:
                message = f"{service} rate limit exceeded. Retry after {retry_after} seconds."
            else:
                message = f"{service} rate limit exceeded."
        if not hint and service == "GitHub":
            hint = "Authenticate with GITHUB_TOKEN to increase limit from 60 to 5000 requests/hour."
        super().__init__(service, None, message, hint)


class MalformedInputError(RenovateSafetyError):
    """A manifest, version string or payload could not be parsed."""

    pass


class ValidationError(RenovateSafetyError):
    """Untrusted input failed format or safety validation.

    Raised before the value reaches any network call or path construction.
    """

    def __init__(self, field: str, value: str, reason: str) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(
            f"Invalid {field} {value!r}: {reason}",
            "Package names and versions taken from PR metadata must match registry naming rules.",
        )


class ConfigurationError(RenovateSafetyError):
    """Invalid configuration."""

    pass


class MissingTokenError(ConfigurationError):
    """Required token is missing."""

    def __init__(
        self,
        token_name: str,
        message: str = "",
        hint: str = "",
    ) -> None:
        if not message:
            message = f"Required environment variable {token_name} is not set"
        if not hint:
            hint = f"Set {token_name} in your environment or CI/CD variables."
        super().__init__(message, hint)


class UnsupportedEcosystemError(RenovateSafetyError):
    """Unsupported package ecosystem."""

    def __init__(
        self,
        ecosystem: str,
        message: str = "",
        hint: str = "",
    ) -> None:
        if not message:
            message = f"Unsupported package ecosystem: {ecosystem}"
        if not hint:
            hint = "Supported ecosystems: npm, pypi."
        super().__init__(message, hint)
