"""
Exceptions raised by the AI access layer.

Every message carried by these exceptions is safe to show to the end user;
routers surface ``str(exc)`` verbatim.
"""


class AIServiceError(Exception):
    """A remote model call failed; the message is the provider's diagnostic text."""


class AIConfigurationError(AIServiceError):
    """The model endpoint cannot be used at all (e.g. missing API key)."""


class ServiceOverloadedError(AIServiceError):
    """Rate limiting persisted through every retry attempt."""
