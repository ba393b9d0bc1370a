# services/errors.py
"""Error types raised by the billing services.

Routers translate these into HTTP responses; services never raise
HTTPException themselves.
"""


class ConfigurationError(RuntimeError):
    """A provider credential or price id is missing from the environment."""


class WebhookSignatureError(ValueError):
    """Webhook body is empty or its signature does not verify."""


class WebhookPayloadError(ValueError):
    """Webhook body verified but does not match the expected event shape."""


class PaymentProviderError(RuntimeError):
    """A call to Stripe / PayPal / Coinbase failed or returned an unusable answer."""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
