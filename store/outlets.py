"""Outlet reading store - last known charge status per outlet"""
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Annotated, Callable, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class ParseError(ValueError):
    """Raised when a snapshot payload cannot be restored."""


@dataclass
class OutletReading:
    """
    Last observed charge status of one outlet.

    Attributes:
        power: Vendor formatted power string, never parsed.
        used_minutes: Minutes charged so far as reported by the vendor.
        updated_at: Unix timestamp (seconds) of the write that stored it.
    """
    power: str = ""
    used_minutes: int = 0
    updated_at: int = 0


# json.loads accepts NaN, Infinity and 1e400; none of them fit an integer
FiniteNumber = Annotated[StrictFloat, Field(allow_inf_nan=False)]


class WireReading(BaseModel):
    """One outlet entry of the snapshot JSON object."""
    model_config = ConfigDict(extra="ignore")

    power: StrictStr
    used_minutes: Union[StrictInt, FiniteNumber]
    updated_at: Union[StrictInt, FiniteNumber]

    @classmethod
    def from_reading(cls, reading: OutletReading) -> "WireReading":
        return cls(
            power=reading.power,
            used_minutes=reading.used_minutes,
            updated_at=reading.updated_at
        )

    def to_reading(self) -> OutletReading:
        return OutletReading(
            power=self.power,
            used_minutes=int(self.used_minutes),
            updated_at=int(self.updated_at)
        )


_SNAPSHOT_ADAPTER = TypeAdapter(dict[str, WireReading])


class OutletStore:
    """
    Concurrency safe mapping of outlet id to its last known reading.

    A single lock guards the whole mapping. Entries are never removed.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._data: dict[str, OutletReading] = {}
        # Plain mutex: the stdlib has no reader/writer lock and every section is short
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def __contains__(self, outlet_id: str) -> bool:
        with self._lock:
            return outlet_id in self._data

    def get(self, outlet_id: str) -> tuple[OutletReading, bool]:
        """Return (reading, True), or a zero-value reading and False when unknown."""
        with self._lock:
            reading = self._data.get(outlet_id)
            if reading is None:
                return OutletReading(), False
            return OutletReading(reading.power, reading.used_minutes, reading.updated_at), True

    def set(self, outlet_id: str, reading: OutletReading) -> None:
        """Store a copy of reading, stamping updated_at with the current time."""
        with self._lock:
            self._data[outlet_id] = OutletReading(
                power=reading.power,
                used_minutes=reading.used_minutes,
                updated_at=int(self._clock())
            )

    def snapshot(self) -> bytes:
        """Serialize the whole store to a JSON object."""
        with self._lock:
            wire = {
                outlet_id: WireReading.from_reading(reading)
                for outlet_id, reading in self._data.items()
            }
        return _SNAPSHOT_ADAPTER.dump_json(wire)

    def restore(self, data: Union[bytes, str]) -> None:
        """
        Load a snapshot, keeping every updated_at exactly as given.

        Entries are applied in document order. An invalid entry stops the
        restore; entries applied before it are kept.

        Raises:
            ParseError: if data is not a JSON object of outlet readings.
        """
        try:
            payload = json.loads(data)
        except ValueError as e:
            raise ParseError(f"snapshot is not valid JSON: {e}") from e

        if not isinstance(payload, dict):
            raise ParseError(f"snapshot must be a JSON object, got {type(payload).__name__}")

        restored = 0
        with self._lock:
            for outlet_id, entry in payload.items():
                try:
                    reading = WireReading.model_validate(entry).to_reading()
                except (ValidationError, ValueError, OverflowError) as e:
                    raise ParseError(
                        f"invalid entry for outlet {outlet_id!r} after {restored} restored: {e}"
                    ) from e
                self._data[outlet_id] = reading
                restored += 1

        logger.debug(f"Store: Restored {restored} outlet readings")
