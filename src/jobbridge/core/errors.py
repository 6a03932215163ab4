"""Error taxonomy shared by every bridge stage."""

from __future__ import annotations


class BridgeError(RuntimeError):
    """Base class for every terminal bridge failure."""

    stage: str = "bridge"


class ConfigurationError(BridgeError):
    """Raised for missing or invalid inputs. Never retried."""

    stage = "configuration"

    def __init__(self, message: str, *, keys: list[str] | None = None) -> None:
        super().__init__(message)
        self.keys = list(keys or [])


class NotFoundError(BridgeError):
    """Raised when resolution finds no matching job."""

    stage = "resolve"

    def __init__(self, message: str, *, job_name: str, context: str) -> None:
        super().__init__(message)
        self.job_name = job_name
        self.context = context


class PreconditionError(BridgeError):
    """Raised when trigger variables are incomplete."""

    stage = "trigger"

    def __init__(self, message: str, *, missing: list[str]) -> None:
        super().__init__(message)
        self.missing = list(missing)
