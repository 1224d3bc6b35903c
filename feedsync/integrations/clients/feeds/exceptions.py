import typing


class FeedException(Exception):
    def __init__(self, message: str = "") -> None:
        Exception.__init__(self, message)
        self.message = message


class FeedConnectionError(FeedException):
    pass


class FeedAuthenticationError(FeedException):
    pass


class FeedFileNotFoundError(FeedException):
    pass


class FeedFetchError(FeedException):
    def __init__(self, message: str, attempts: int, last_error: typing.Optional[Exception] = None) -> None:
        FeedException.__init__(self, message)
        self.attempts = attempts
        self.last_error = last_error
