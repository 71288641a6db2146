"""Exception hierarchy for the external registries and the simulation dispatch."""

from __future__ import annotations


class RegistryError(Exception):
    """Base exception for geocoding and certificate registry failures."""


class RegistryConnectionError(RegistryError):
    """The registry could not be reached (DNS, refused connection, timeout)."""

    def __init__(self, service: str, detail: str = ""):
        self.service = service
        super().__init__(f"{service} unreachable{': ' + detail if detail else ''}")


class RegistryServiceError(RegistryError):
    """The registry answered, but not with a usable success payload."""

    def __init__(self, service: str, status: int | None, message: str):
        self.service = service
        self.status = status
        self.message = message
        super().__init__(f"{service} error (status {status}): {message}")


class DispatchError(Exception):
    """Base exception for a simulation request that produced no result."""


class DispatchConnectionError(DispatchError):
    """The simulation server could not be reached."""


class DispatchServiceError(DispatchError):
    """The simulation server answered with a non-success status."""

    def __init__(self, status: int | None, message: str):
        self.status = status
        self.message = message
        super().__init__(f"simulation error (status {status}): {message}")


class DispatchBusyError(DispatchServiceError):
    """The simulation server rejected the run because it is saturated."""


class DispatchFailedError(DispatchError):
    """The background worker replied with the failure sentinel."""


class DispatchTimeoutError(DispatchError):
    """No reply arrived within the dispatch time limit."""

    def __init__(self, timeout_s: float):
        self.timeout_s = timeout_s
        super().__init__(f"simulation exceeded {timeout_s:g}s time limit")
