from typing import Optional


class StateNetworkError(ValueError):
    """Base class for every error raised while building a state network."""


class MalformedExpressionError(StateNetworkError):
    def __init__(self, message: str, position: Optional[int] = None):
        self.position = position
        if position is not None:
            message = f"{message} (at token {position})"
        super().__init__(message)


class UnknownElementError(StateNetworkError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Element '{name}' has no configuration.")


class InvalidConfigurationError(StateNetworkError):
    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid configuration for element '{name}': {reason}")
