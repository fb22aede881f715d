"""Menu bar egress module - derives the status line from the reading store"""
import asyncio
import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from connection.store import ReadingStore
from sources.base import Reading, StoredReading

logger = logging.getLogger(__name__)

# Solar power above which the bright sun icon is shown (Watts)
SOLAR_BRIGHT_THRESHOLD = 4000
# Readings younger than this count as "Now" (seconds)
FRESH_AGE = 3
# Stale data timeout (seconds)
STALE_DATA_TIMEOUT = 60


class TitleMode(enum.Enum):
    SOLAR_POWER = "solar-power"
    LOAD_POWER = "load-power"
    BATTERY_POWER = "battery-power"
    BATTERY_LEVEL = "battery-level"
    GRID_POWER = "grid-power"


def format_power(watts: float) -> str:
    """Show Watts, or kW with one decimal from 10000 W up."""
    power = round(watts)
    if abs(power) >= 10000:
        return f"{power / 1000:.1f} kW"
    return f"{power} W"


def format_level(level: float) -> str:
    return f"{round(level * 100)}%"


def battery_image(level: float) -> str:
    if level < 0.125:
        return "battery.0percent"
    if level < 0.375:
        return "battery.25percent"
    if level < 0.625:
        return "battery.50percent"
    if level < 0.875:
        return "battery.75percent"
    return "battery.100percent"


def menu_bar_image(reading: Reading | None, mode: TitleMode) -> str | None:
    """SF Symbol name for the menu bar, None before the first reading."""
    if reading is None:
        return None

    if mode is TitleMode.SOLAR_POWER:
        return "sun.max" if reading.from_solar > SOLAR_BRIGHT_THRESHOLD else "sun.min"
    if mode is TitleMode.LOAD_POWER:
        return "house"
    if mode in (TitleMode.BATTERY_POWER, TitleMode.BATTERY_LEVEL):
        if reading.is_charging:
            return "battery.100percent.bolt"
        return battery_image(reading.battery_level)
    return "powercord"


def menu_bar_title(reading: Reading | None, mode: TitleMode) -> str:
    if reading is None:
        return "Home Control"

    if mode is TitleMode.SOLAR_POWER:
        return format_power(reading.from_solar)
    if mode is TitleMode.LOAD_POWER:
        return format_power(reading.to_load)
    if mode is TitleMode.BATTERY_POWER:
        return format_power(reading.from_battery)
    if mode is TitleMode.BATTERY_LEVEL:
        return format_level(reading.battery_level)
    return format_power(reading.from_grid)


def menu_items(reading: Reading | None) -> list[str]:
    """The detail lines of the dropdown menu."""
    if reading is None:
        return []

    if reading.is_charging:
        battery = f"To Battery: {format_power(reading.to_battery)}"
    else:
        battery = f"From Battery: {format_power(reading.from_battery)}"

    if reading.to_grid > reading.from_grid:
        grid = f"To Grid: {format_power(reading.to_grid)}"
    else:
        grid = f"From Grid: {format_power(reading.from_grid)}"

    return [
        f"Load: {format_power(reading.to_load)}",
        f"Solar: {format_power(reading.from_solar)}",
        battery,
        f"Battery Level: {format_level(reading.battery_level)}",
        grid,
    ]


def updated_title(age: float | None) -> str:
    if age is None:
        return "Updated: Never"
    if age < FRESH_AGE:
        return "Updated: Now"

    seconds = int(age)
    if seconds < 60:
        relative = f"{seconds} s ago"
    elif seconds < 3600:
        relative = f"{seconds // 60} min ago"
    elif seconds < 86400:
        relative = f"{seconds // 3600} h ago"
    else:
        relative = f"{seconds // 86400} d ago"
    return f"Updated: {relative}"


@dataclass(frozen=True)
class MenuBarStatus:
    image: str | None
    title: str
    items: tuple[str, ...]
    updated: str

    def line(self) -> str:
        parts = [f"[{self.image}]"] if self.image else []
        parts.append(self.title)
        parts.extend(self.items)
        parts.append(self.updated)
        return " | ".join(parts)


class MenuBar:
    """
    Read-only view over the reading store.

    Never touches transport state: everything shown is derived from the
    store's reading and its age.
    """

    def __init__(
        self,
        store: ReadingStore,
        title_mode: TitleMode = TitleMode.SOLAR_POWER,
        stale_timeout: float = STALE_DATA_TIMEOUT
    ):
        self.store = store
        self.title_mode = title_mode
        self.stale_timeout = stale_timeout
        self.stale_alert_sent = False
        self._last_line: str | None = None
        self._remove_listener = store.add_listener(self._on_reading)

    def _on_reading(self, stored: StoredReading) -> None:
        """Show an accepted reading right away instead of on the next tick."""
        try:
            self.refresh()
        except Exception as e:
            logger.error(f"Menu bar: Refresh failed for reading {stored.id}: {e}")

    def close(self) -> None:
        self._remove_listener()

    def render(self, now: datetime | None = None) -> MenuBarStatus:
        now = now or datetime.now(timezone.utc)
        stored = self.store.get()
        reading = stored.value if stored else None
        return MenuBarStatus(
            image=menu_bar_image(reading, self.title_mode),
            title=menu_bar_title(reading, self.title_mode),
            items=tuple(menu_items(reading)),
            updated=updated_title(self.store.age_since(now)),
        )

    def refresh(self, now: datetime | None = None) -> MenuBarStatus:
        """Render, log the status line when it changed, and track staleness."""
        now = now or datetime.now(timezone.utc)
        status = self.render(now)

        line = status.line()
        if line != self._last_line:
            logger.info(line)
            self._last_line = line

        age = self.store.age_since(now)
        if age is not None and age > self.stale_timeout:
            if not self.stale_alert_sent:
                logger.warning(f"No data received for {self.stale_timeout}s, showing stale reading")
                self.stale_alert_sent = True
        else:
            # Reset stale flag when data is fresh
            self.stale_alert_sent = False

        return status

    async def run(self, interval: float = 2.0) -> None:
        while True:
            try:
                self.refresh()
            except Exception as e:
                logger.error(f"Menu bar: Unexpected error: {e}")
            await asyncio.sleep(interval)
