# src/signalsink/exporter/protocols.py
"""Structural protocols for telemetry trees and transports.

The encoders only need to walk resource groups -> scope groups -> items, so
they accept any object with that shape. signalsink.contracts.telemetry
provides concrete dataclasses; a host may pass its own tree objects.
"""

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Protocol, TypeVar, runtime_checkable

if TYPE_CHECKING:
    from signalsink.contracts.telemetry import AnyValue, InstrumentationScope

T_co = TypeVar("T_co", covariant=True)


class ResourceProtocol(Protocol):
    @property
    def attributes(self) -> "Mapping[str, AnyValue]": ...


class ScopeGroupProtocol(Protocol[T_co]):
    @property
    def scope(self) -> "InstrumentationScope": ...

    @property
    def items(self) -> Sequence[T_co]: ...


class ResourceGroupProtocol(Protocol[T_co]):
    @property
    def resource(self) -> ResourceProtocol: ...

    @property
    def scope_groups(self) -> Sequence[ScopeGroupProtocol[T_co]]: ...


class SignalTreeProtocol(Protocol[T_co]):
    """One materialized signal batch."""

    @property
    def resource_groups(self) -> Sequence[ResourceGroupProtocol[T_co]]: ...


@runtime_checkable
class TransportProtocol(Protocol):
    """Sends one payload. Raises DeliveryError subclasses on failure.

    Thread Safety:
        deliver() is called concurrently from every worker of every
        signal pipeline. Implementations must be thread-safe.
    """

    def deliver(self, url: str, body: bytes, headers: Mapping[str, str] | None = None) -> None:
        """POST body to url.

        Raises:
            TransportError: Timeout or connection failure
            HTTPStatusError: Response status outside [200, 300)
        """
        ...

    def close(self) -> None:
        """Release connections. Must be idempotent."""
        ...
