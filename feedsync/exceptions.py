class SyncException(Exception):
    pass


class SyncConfigurationError(SyncException):
    def __init__(self, message: str) -> None:
        SyncException.__init__(self, message)
        self.message = message


class FeedParseError(SyncException):
    def __init__(self, message: str) -> None:
        SyncException.__init__(self, message)
        self.message = message
