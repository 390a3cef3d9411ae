"""Error taxonomy for synthetic test runs.

Every failure that reaches reporting is one of the named codes below. API
failures are raised as ``ApiRequestError`` by the client and converted to a
code by the orchestrator.
"""

from typing import TYPE_CHECKING, Literal, TypeAlias, get_args

if TYPE_CHECKING:
    from synthetics_ci.config import RunConfig

NonCriticalCiErrorCode: TypeAlias = Literal["NO_TESTS_TO_RUN"]

CriticalCiErrorCode: TypeAlias = Literal[
    "AUTHORIZATION_ERROR",
    "MISSING_API_KEY",
    "MISSING_APP_KEY",
    "POLL_RESULTS_FAILED",
    "TOO_MANY_TESTS_TO_TRIGGER",
    "TRIGGER_TESTS_FAILED",
    "TUNNEL_START_FAILED",
    "UNAVAILABLE_TEST_CONFIG",
    "UNAVAILABLE_TUNNEL_CONFIG",
]

CiErrorCode: TypeAlias = NonCriticalCiErrorCode | CriticalCiErrorCode

NON_CRITICAL_ERROR_CODES: frozenset[str] = frozenset(
    get_args(NonCriticalCiErrorCode)
)
CRITICAL_ERROR_CODES: frozenset[str] = frozenset(
    get_args(CriticalCiErrorCode)
)


class CiError(Exception):
    """Named failure of a run, reported as ``code: message``."""

    def __init__(self, code: CiErrorCode, message: str = "") -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        if self.message:
            return f"{self.code}: {self.message}"
        return self.code


class CriticalError(CiError):
    """Failure that aborts the run when critical errors are escalated."""

    def __init__(self, code: CriticalCiErrorCode, message: str = "") -> None:
        if code not in CRITICAL_ERROR_CODES:
            raise ValueError(f"'{code}' is not a critical error code")
        super().__init__(code, message)


class ConfigurationError(Exception):
    """Raised when a configuration or suite file cannot be used."""


class ApiRequestError(Exception):
    """Raised by API clients when a request fails.

    ``status`` is the HTTP status of the response, or None when the request
    never got a response (DNS, connection reset, timeout...).
    """

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status

    @property
    def is_not_found(self) -> bool:
        """Whether the server answered 404."""
        return self.status == 404

    @property
    def is_forbidden(self) -> bool:
        """Whether the server rejected the credentials."""
        return self.status in {401, 403}


def classify_api_error(error: Exception, code: CriticalCiErrorCode) -> CriticalError:
    """Convert a failed API call into the critical error of the failing stage.

    Credential rejections are reported as ``AUTHORIZATION_ERROR`` whatever the
    stage; any other status, network failure or unexpected exception gets the
    stage's ``code``. Callers handle 404 before classification since it is
    never critical.
    """
    message = str(error) or type(error).__name__
    if isinstance(error, ApiRequestError) and error.is_forbidden:
        return CriticalError("AUTHORIZATION_ERROR", message)
    return CriticalError(code, message)


def is_fatal(error: CiError, config: "RunConfig") -> bool:
    """Whether an error aborts the run with exit code 1.

    Critical errors only abort when ``fail_on_critical_errors`` is set;
    otherwise they are reported as a warning and the run ends normally.
    """
    return isinstance(error, CriticalError) and config.fail_on_critical_errors
