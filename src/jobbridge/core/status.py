"""Build outcome to host status translation."""

from __future__ import annotations

from jobbridge.models.pipeline import HostStatus

_OUTCOME_STATUSES: dict[str, HostStatus] = {
    "0": HostStatus.SUCCESS,
    "1": HostStatus.FAILED,
}


def translate_build_status(outcome: str | None) -> HostStatus:
    """Map an upstream build exit code to a host commit status.

    Codes are matched exactly. Anything else, including an empty value,
    degrades to `pending`.
    """
    if outcome is None:
        return HostStatus.PENDING
    return _OUTCOME_STATUSES.get(outcome, HostStatus.PENDING)
