class SprigError(Exception):
    pass


class ConfigError(SprigError):
    pass


class ProviderHTTPError(SprigError):
    def __init__(self, status: int, message: str = ""):
        self.status = status
        self.message = message
        super().__init__(f"HTTP {status}: {message}" if message else f"HTTP {status}")


class ProviderConnectionError(SprigError):
    pass


class RequestInProgressError(SprigError):
    pass


class StreamCancelled(SprigError):
    pass
