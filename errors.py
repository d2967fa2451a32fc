class InvalidInput(ValueError):
    """Raised when an aggregator call is made without a usable argument."""


class SourceUnavailable(Exception):
    """A single feed source failed to load."""

    def __init__(self, source: str, cause: BaseException) -> None:
        super().__init__(f"{source} unavailable: {cause}")
        self.source = source
        self.cause = cause


class TotalFailure(Exception):
    """Every feed source failed; carries the individual failures."""

    def __init__(self, failures: list[SourceUnavailable]) -> None:
        sources = ", ".join(f.source for f in failures)
        super().__init__(f"all activity sources failed: {sources}")
        self.failures = failures
