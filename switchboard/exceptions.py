class SwitchboardError(Exception):
    """Base exception for message handling errors."""

    pass


class MalformedPayloadError(SwitchboardError):
    """Raised when a webhook payload lacks the fields needed to identify a message."""

    def __init__(self, channel: str, missing: list[str]):
        self.channel = channel
        self.missing = missing
        super().__init__(f"Malformed {channel} payload, missing or invalid: {', '.join(missing)}")


class HistoryUnavailableError(SwitchboardError):
    """Raised when thread history cannot be read or written."""

    def __init__(self, thread_id: str, reason: str = ""):
        self.thread_id = thread_id
        self.reason = reason
        super().__init__(f"History unavailable for thread {thread_id}: {reason}")


class ProviderError(SwitchboardError):
    """Raised when the LLM provider fails to produce a completion."""

    pass


class ProviderTimeout(ProviderError):
    """Raised when the LLM provider does not answer within the time limit."""

    pass


class DeliveryError(SwitchboardError):
    """Raised when an outbound channel adapter fails to send a message."""

    def __init__(self, channel: str, recipient: str, reason: str = ""):
        self.channel = channel
        self.recipient = recipient
        self.reason = reason
        super().__init__(f"Delivery via {channel} to {recipient} failed: {reason}")
