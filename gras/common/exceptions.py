"""Exception types for scraper errors.

Three families are used throughout the package:

- ArgumentError: bad command-line input, detected before any browser work.
- TransientException: failures that may resolve on retry (navigation
  errors, embedded state that never showed up).
- ScraperAssumptionException: the site no longer looks the way the
  extraction code assumes. Retrying will not help.
"""

from typing import Any


class ArgumentError(ValueError):
    """Raised when command-line arguments fail validation."""


class ScraperAssumptionException(Exception):
    """Base class for scraper assumption violations.

    The extraction code makes assumptions about the embedded page state and
    the rendered table markup. When those assumptions are violated it raises
    a subclass of this exception with enough context to diagnose the change.
    """

    def __init__(
        self,
        message: str,
        request_url: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable description of the assumption violation.
            request_url: The URL of the page that triggered this error.
            context: Optional dict of additional context (keys, counts, etc).
        """
        self.message = message
        self.request_url = request_url
        self.context = context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with context.

        Returns:
            Formatted error message string.
        """
        parts = [self.message]
        parts.append(f"URL: {self.request_url}")

        if self.context:
            parts.append("Context:")
            for key, value in self.context.items():
                parts.append(f"  {key}: {value}")

        return "\n".join(parts)


class HTMLStructuralAssumptionException(ScraperAssumptionException):
    """Raised when HTML structure doesn't match expectations.

    Raised when XPath or CSS selectors return a different number of elements
    than expected, which usually means the ranking table markup has changed.

    Attributes:
        selector: The XPath or CSS selector that was used.
        selector_type: Type of selector ("xpath" or "css").
        is_element_query: True if querying for elements, False for strings.
    """

    def __init__(
        self,
        selector: str,
        selector_type: str,
        description: str,
        expected_min: int,
        expected_max: int | None,
        actual_count: int,
        request_url: str,
        is_element_query: bool = True,
    ) -> None:
        self.selector = selector
        self.selector_type = selector_type
        self.description = description
        self.expected_min = expected_min
        self.expected_max = expected_max
        self.actual_count = actual_count
        self.is_element_query = is_element_query

        if expected_max is None:
            expected_str = f"at least {expected_min}"
        elif expected_min == expected_max:
            expected_str = f"exactly {expected_min}"
        else:
            expected_str = f"between {expected_min} and {expected_max}"

        message = (
            f"HTML structure mismatch: Expected {expected_str} "
            f"elements for '{description}', but found {actual_count}"
        )

        context = {
            "selector": selector,
            "selector_type": selector_type,
            "expected_min": expected_min,
            "expected_max": expected_max
            if expected_max is not None
            else "unlimited",
            "actual_count": actual_count,
            "is_element_query": is_element_query,
        }

        super().__init__(message, request_url, context)


class MalformedDataError(ScraperAssumptionException):
    """Raised when the embedded state is present but not shaped as expected.

    Raised for missing keys and for pydantic validation failures on the raw
    state entries. Not retried: the (subject, version) pair is recorded as
    failed and the run moves on.

    Attributes:
        errors: Pydantic-style error dicts, when validation produced them.
        failed_doc: The raw document that failed, when available.
        model_name: Name of the model being validated, if any.
    """

    def __init__(
        self,
        message: str,
        request_url: str,
        errors: list[dict[str, Any]] | None = None,
        failed_doc: Any = None,
        model_name: str | None = None,
    ) -> None:
        self.errors = errors or []
        self.failed_doc = failed_doc
        self.model_name = model_name

        context: dict[str, Any] = {}
        if model_name:
            context["model"] = model_name
        if self.errors:
            context["error_count"] = len(self.errors)
            context["errors"] = ", ".join(
                f"{'.'.join(str(p) for p in err.get('loc', ()))}: "
                f"{err.get('msg', '')}"
                for err in self.errors
            )

        super().__init__(message, request_url, context)


# =============================================================================
# Transient Exceptions
# =============================================================================


class TransientException(Exception):
    """Base class for transient errors that might resolve on retry.

    Transient exceptions represent temporary failures like network issues
    or a page that has not finished hydrating. Unlike assumption exceptions,
    which indicate the extraction code needs updating, transient exceptions
    suggest retrying may succeed.
    """

    pass


class NavigationError(TransientException):
    """Raised when the browser fails to load a page.

    Attributes:
        url: The URL that failed to load.
        attempts: How many navigation attempts were made.
        message: Human-readable error message.
    """

    def __init__(self, url: str, reason: str, attempts: int = 1) -> None:
        self.url = url
        self.reason = reason
        self.attempts = attempts
        self.message = (
            f"Navigation to {url} failed after {attempts} attempt(s): {reason}"
        )
        super().__init__(self.message)


class StateNotFoundError(TransientException):
    """Raised when the embedded page state never reached the expected shape.

    Attributes:
        url: The page that was being polled.
        timeout_seconds: How long the extractor waited.
        last_shape: Short description of what was last observed.
        message: Human-readable error message.
    """

    def __init__(
        self, url: str, timeout_seconds: float, last_shape: str = "nothing"
    ) -> None:
        self.url = url
        self.timeout_seconds = timeout_seconds
        self.last_shape = last_shape
        self.message = (
            f"Embedded state on {url} not ready after {timeout_seconds}s "
            f"(last saw {last_shape})"
        )
        super().__init__(self.message)


class BrowserLaunchError(TransientException):
    """Raised when Playwright cannot start the browser or open its page.

    Typically the browser binary is not installed, or the Playwright driver
    process died during startup.

    Attributes:
        browser_type: The Playwright browser that was being started.
        reason: Playwright's error message.
        message: Human-readable error message.
    """

    def __init__(self, browser_type: str, reason: str) -> None:
        self.browser_type = browser_type
        self.reason = reason
        self.message = f"Could not start {browser_type}: {reason}"
        super().__init__(self.message)
