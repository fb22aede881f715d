"""Base definitions for the Home Control agent - data contracts and protocols"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO8601 timestamp as sent by the server.

    Naive timestamps are taken as UTC so that readings stay comparable.
    """
    if not isinstance(value, str):
        raise TypeError(f"timestamp must be a string, got {type(value).__name__}")
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Reading:
    """
    One timestamped telemetry snapshot of the power system.

    Attributes:
        from_solar: Solar production in Watts.
        to_load: House consumption in Watts.
        from_battery: Battery discharge in Watts.
        to_battery: Battery charge in Watts.
        from_grid: Grid import in Watts.
        to_grid: Grid export in Watts.
        battery_level: State of charge, 0.0 - 1.0.
        is_charging: True while the battery is charging.
        reading_at: Timezone-aware moment the inverter took the reading.
    """
    from_solar: float
    to_load: float
    from_battery: float
    to_battery: float
    from_grid: float
    to_grid: float
    battery_level: float
    is_charging: bool
    reading_at: datetime

    @classmethod
    def from_dict(cls, data: dict) -> "Reading":
        return cls(
            from_solar=float(data["fromSolar"]),
            to_load=float(data["toLoad"]),
            from_battery=float(data["fromBattery"]),
            to_battery=float(data["toBattery"]),
            from_grid=float(data["fromGrid"]),
            to_grid=float(data["toGrid"]),
            battery_level=float(data["batteryLevel"]),
            is_charging=bool(data["isCharging"]),
            reading_at=parse_timestamp(data["readingAt"]),
        )


@dataclass(frozen=True)
class StoredReading:
    """A Reading as persisted by the server, with its storage id."""
    id: str
    value: Reading

    @property
    def reading_at(self) -> datetime:
        return self.value.reading_at

    @classmethod
    def from_dict(cls, data: dict) -> "StoredReading":
        return cls(id=str(data["id"]), value=Reading.from_dict(data["value"]))


@dataclass(frozen=True)
class SubscriptionSettings:
    """
    Which message classes the server should push to this client.

    The defaults are used when nothing custom has been configured.
    """
    inverter_reading_created: bool = True
    setting_saved: bool = True

    # Wire name -> attribute name
    MESSAGE_CLASSES = {
        "inverterReadingCreated": "inverter_reading_created",
        "settingSaved": "setting_saved",
    }

    @classmethod
    def from_names(cls, names) -> "SubscriptionSettings":
        """Build settings enabling exactly the given message classes."""
        enabled = set(names)
        unknown = enabled - cls.MESSAGE_CLASSES.keys()
        if unknown:
            raise ValueError(f"Unknown message classes: {', '.join(sorted(unknown))}")
        return cls(**{attr: wire in enabled for wire, attr in cls.MESSAGE_CLASSES.items()})

    def to_dict(self) -> dict:
        return {wire: getattr(self, attr) for wire, attr in self.MESSAGE_CLASSES.items()}


# --- Inbound stream messages -------------------------------------------------

@dataclass(frozen=True)
class RegistrationAck:
    session_id: str


@dataclass(frozen=True)
class TelemetryPush:
    stored_reading: StoredReading


@dataclass(frozen=True)
class SettingSaved:
    setting: dict


@dataclass(frozen=True)
class Heartbeat:
    pass


@dataclass(frozen=True)
class UnknownMessage:
    type: str | None
    payload: dict = field(default_factory=dict)


InboundMessage = RegistrationAck | TelemetryPush | SettingSaved | Heartbeat | UnknownMessage


# --- Collaborators -----------------------------------------------------------

class ReadingClient(Protocol):
    """
    Protocol for the Home Control HTTP API.

    Uses Protocol for duck typing - tests pass fakes without inheriting.
    """

    async def latest_reading(self) -> StoredReading:
        """
        Fetch the most recent stored reading.

        Raises ReadingNotFound or TransientNetworkFailure.
        """
        ...

    async def push_settings(self, settings: SubscriptionSettings, session_id: str) -> None:
        """
        Send subscription settings for a registered stream session.

        Raises SettingsPushFailure.
        """
        ...


class MessageStream(Protocol):
    """One open duplex connection."""

    async def receive(self) -> InboundMessage:
        """
        Suspend until the next inbound message arrives.

        Raises StreamTerminated when the connection ends and
        ProtocolViolation for frames that cannot be decoded.
        """
        ...

    async def close(self) -> None:
        ...


class StreamTransport(Protocol):
    """Factory for stream connections. Each open() is a brand-new connection."""

    async def open(self) -> MessageStream:
        """Raises TransientNetworkFailure if the connection cannot be made."""
        ...
