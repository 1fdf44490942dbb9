"""
Error types for the ban lifecycle core.

State-mutation errors (ValidationError, NotFoundError, ConflictError) are raised
to the caller and abort the operation. TransportError never leaves the
dispatcher: it is captured into a failed MessageDeliveryStatus instead.
IntegrityError means a lock or store invariant was broken and is not
recoverable locally.
"""


class BanServiceError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(BanServiceError):
    """Input failed a format or range check."""


class NotFoundError(BanServiceError):
    """An id did not resolve to a customer or an active ban."""


class ConflictError(BanServiceError):
    """A state precondition did not hold (e.g. banning a banned customer)."""


class IntegrityError(BanServiceError):
    """A stored invariant is violated, e.g. two active bans for one customer."""


class TemplateError(BanServiceError):
    """Base class for template rendering problems."""


class MissingParameterError(TemplateError):
    """The template references a parameter the caller did not supply."""

    def __init__(self, template_name: str, missing: list[str]):
        self.template_name = template_name
        self.missing = missing
        super().__init__(
            f"Template '{template_name}' is missing parameters: {', '.join(missing)}"
        )


class UnknownParameterError(TemplateError):
    """The caller supplied a parameter the template does not declare."""

    def __init__(self, template_name: str, unknown: list[str]):
        self.template_name = template_name
        self.unknown = unknown
        super().__init__(
            f"Template '{template_name}' does not declare parameters: {', '.join(unknown)}"
        )


class TemplateNotFoundError(TemplateError):
    """No template is loaded under the requested name."""


class UnsupportedChannelError(BanServiceError):
    """No transport is registered for the requested channel identifier."""


class TransportError(BanServiceError):
    """A channel failed to deliver a message. Captured by the dispatcher."""
