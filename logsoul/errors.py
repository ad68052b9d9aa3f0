"""LogSoul - Exceptions"""


class LogSoulError(Exception):
    """Base class for LogSoul errors"""


class DomainNotFoundError(LogSoulError, LookupError):
    def __init__(self, domain):
        super().__init__(f"Domain not found: {domain}")
        self.domain = domain


class ConfigError(LogSoulError, ValueError):
    """Invalid configuration value"""


class NotificationError(LogSoulError):
    """A notification channel failed to deliver"""

    def __init__(self, channel: str, reason):
        super().__init__(f"{channel} notification failed: {reason}")
        self.channel = channel
