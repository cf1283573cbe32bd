"""Project error hierarchy."""


class OllamaGateError(Exception):
    """Base error."""


class ConfigError(OllamaGateError):
    """Raised when the gateway config file cannot be read or parsed."""


class AuthError(OllamaGateError):
    """Raised when a request carries no token or a token outside its scope."""

    def __init__(self, message: str, token: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.token = token


class UpstreamTransportError(OllamaGateError):
    """Raised when the upstream inference service cannot be reached."""

    def __init__(self, url: str, detail: str) -> None:
        super().__init__(f"upstream unreachable: {detail}")
        self.url = url
        self.detail = detail


class TranslationError(OllamaGateError):
    """Raised when a required field is missing or has the wrong type."""

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}: {reason}")
        self.field = field
        self.reason = reason
