"""Exception types shared across the research loop and Citation Mode."""
from __future__ import annotations


class AgenticSearchError(Exception):
    """Base class for errors raised by this package."""


class ConfigurationError(AgenticSearchError):
    """Missing credentials or an unsupported configuration value."""


class ProviderError(AgenticSearchError):
    """A remote provider rejected a request or reported an error mid-stream."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        status_code: int | None = None,
        code: str | int | None = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.code = code


class ToolExecutionError(AgenticSearchError):
    """A model-requested tool call could not be executed."""


class ClaimExtractionError(AgenticSearchError):
    """The claim extraction call returned nothing usable."""


class ResearchRunError(AgenticSearchError):
    """An orchestration run failed and produced no answer."""


class InvalidTransition(AgenticSearchError):
    """A session state received an action it does not accept."""

    def __init__(self, state: object, action: object):
        super().__init__(
            f"{type(action).__name__} is not valid in state {type(state).__name__}"
        )
        self.state = state
        self.action = action
