"""Error taxonomy shared by the interaction pipeline and the AI assistant."""

from __future__ import annotations


class ValidationError(Exception):
    """Malformed request input. Carries field-level details for the 400 body."""

    def __init__(self, details: list[dict]):
        super().__init__("Invalid input")
        self.details = details


class UpstreamError(Exception):
    """An external collaborator (reference store, AI provider) failed or timed out."""


class ProviderError(UpstreamError):
    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
