import enum


class SourceStatus(enum.Enum):
    ACTIVE = 1
    INACTIVE = 2


class JobType(enum.Enum):
    CATALOG = "catalog"
    INVENTORY = "inventory"


class JobStatus(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class FeedProtocol(enum.Enum):
    FTP = "ftp"
    FTPS = "ftps"
    SFTP = "sftp"
    HTTP = "http"
    HTTPS = "https"


class RowErrorReason(enum.Enum):
    MALFORMED = "malformed"
    MISSING_REQUIRED = "missing_required"


class SnapshotBackend(enum.Enum):
    FILE = "file"
    DATABASE = "database"


class HttpMethod(enum.Enum):
    GET = "get"
