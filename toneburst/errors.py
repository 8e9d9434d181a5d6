"""Error kinds for the tone burst utilities, each mapped to a process exit status."""


class ToneBurstError(Exception):
    """Base error; ``exit_code`` is the status the command line tools exit with."""

    exit_code = 1


class UsageError(ToneBurstError):
    exit_code = 1

    def __init__(self, usage, reason=None):
        self.usage = usage
        self.reason = reason
        super().__init__(reason or usage)


class FileOpenError(ToneBurstError):
    exit_code = 2

    def __init__(self, kind, filename, reason=None):
        self.filename = filename
        message = f"Failed to open {kind} file: {filename}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class HeaderIOError(ToneBurstError):
    exit_code = 3


class BurstDataError(ToneBurstError):
    exit_code = 4


class StreamTruncatedError(BurstDataError):
    pass


class StreamWriteError(BurstDataError):
    pass


class ConfigurationError(ToneBurstError):
    exit_code = 5
