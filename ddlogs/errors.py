from __future__ import annotations


class DdLogsError(Exception):
    """Base class for errors that end a ddlogs run."""


class MissingCredentials(DdLogsError):
    def __init__(self, missing: tuple[str, ...] = ("api_key", "app_key")) -> None:
        self.missing = missing
        super().__init__(
            "Missing API credentials ("
            + ", ".join(missing)
            + "). Set DD_API_KEY and DD_APP_KEY environment variables or run `ddlogs configure`"
        )


class ApiError(DdLogsError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(f"Datadog API error: {message}")


class SerializationError(DdLogsError):
    def __init__(self, message: str) -> None:
        super().__init__(f"Serialization error: {message}")


class ConfigError(DdLogsError):
    pass
