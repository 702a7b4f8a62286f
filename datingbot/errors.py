class BotError(Exception):
    """Base class for errors whose message is safe to show to the user."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BotError):
    pass


class NotFoundError(BotError):
    pass


class InsufficientFundsError(BotError):
    def __init__(self, needed: int, balance: int):
        super().__init__(
            f"❌ Not enough coins. You need {needed} coins but have {balance}."
        )
        self.needed = needed
        self.balance = balance


class PermissionDeniedError(BotError):
    pass


class ConfigError(Exception):
    pass
