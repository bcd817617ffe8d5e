from typing import Sequence


class KilnError(Exception):
    pass


class ConfigError(KilnError):
    def __init__(self, message: str, missing: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.missing = list(missing)

    @classmethod
    def missing_vars(cls, names: Sequence[str]) -> "ConfigError":
        return cls(
            f"Missing required environment variables: {', '.join(names)}",
            missing=names,
        )


class DatabaseNotInitialized(KilnError):
    def __init__(self) -> None:
        super().__init__("Database is not initialized. Call init() first.")


class ShutdownTimeout(KilnError):
    def __init__(self, timeout: float) -> None:
        super().__init__(f"Server shutdown timeout ({timeout:g}s)")
        self.timeout = timeout


class ServerError(KilnError):
    """
    Error meant to reach the client.

    Rendered as ``{"success": false, "message": ...}`` with ``status_code``.
    """

    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
