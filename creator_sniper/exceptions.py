"""
Error types for the creator sniper.

Every error carries keyword context (token, url, method, tx...) that is
appended to its message, so a single log line says which coin, endpoint
or RPC call failed.
"""


class BotException(Exception):
    """Root of every error the sniper raises on purpose."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self):
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} [{details}]"


class SwapException(BotException):
    """A buy or sell of a creator coin did not fill, or filled at an unusable price."""


class ValidationException(BotException):
    """A factory log that is not a coin creation we can decode."""


class ReputationLookupException(BotException):
    """The Zora profile or Ethos score request failed or returned something unreadable."""


class ConfigurationException(BotException):
    """Bad .env values, strategy files or CLI overrides; the bot refuses to start."""


class NetworkException(BotException):
    """Base RPC or price API unreachable, timed out, or behind an open circuit."""


class StateException(BotException):
    """A position bookkeeping rule would be broken (duplicate open, double ladder step)."""
