"""Error taxonomy shared by the pipeline, the scheduler and the command layer."""


class SummaryBotError(Exception):
    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(SummaryBotError):
    """Invalid configuration input; nothing was written."""


class StorageError(SummaryBotError):
    pass


class LLMError(SummaryBotError):
    """Language model failed for a reason other than capacity."""


class CapacityError(LLMError):
    """Language model is temporarily unable to serve (rate limit, quota, timeout)."""


class DeliveryError(SummaryBotError):
    pass


class PermanentDeliveryError(DeliveryError):
    """Target chat no longer exists or the bot can no longer post there."""


class QuotaExceededError(SummaryBotError):
    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(f"Daily summary limit reached ({count}/{limit})")
