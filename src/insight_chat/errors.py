class ChatError(Exception):
    """Base class for errors raised by the chat engine."""


class AuthorizationError(ChatError):
    """No valid caller identity, or the caller does not own the chat."""


class NotFoundError(ChatError):
    """Unknown chat or model."""


class BadRequestError(ChatError):
    """The submitted turn is malformed (e.g. it has no user message)."""


class ValidationError(ChatError):
    """A generated query or chart config failed a safety or shape check."""


class ProvisioningError(ChatError):
    """The relational table the query tool expects has not been created."""


class UpstreamError(ChatError):
    """An embedding, model or store call failed."""
