"""GNSS carrier signals and their frequencies."""

from __future__ import annotations

from enum import Enum

LIGHT_SPEED_MPS = 299_792_458.0

_FREQUENCIES_HZ = {
    "L1": 1575.42e6,
    "L2": 1227.60e6,
    "L5": 1176.45e6,
    "L6": 1278.75e6,
    "E1": 1575.42e6,
    "E5": 1191.795e6,
    "E5A": 1176.45e6,
    "E5B": 1207.14e6,
    "E6": 1278.75e6,
    "B1I": 1561.098e6,
    "B1AB1C": 1575.42e6,
    "B2IB2B": 1207.14e6,
    "B2": 1191.795e6,
    "B2A": 1176.45e6,
    "B3": 1268.52e6,
}

_ALIASES = {
    "C1": "L1",
    "C2": "L2",
    "C5": "L5",
    "E5AB": "E5",
    "B1": "B1I",
    "B1C": "B1AB1C",
    "B2B": "B2IB2B",
}

L1_FREQUENCY_HZ = _FREQUENCIES_HZ["L1"]


class Carrier(Enum):
    """Carrier signal identifier."""

    L1 = "L1"
    L2 = "L2"
    L5 = "L5"
    L6 = "L6"
    E1 = "E1"
    E5 = "E5"
    E5A = "E5A"
    E5B = "E5B"
    E6 = "E6"
    B1I = "B1I"
    B1AB1C = "B1AB1C"
    B2IB2B = "B2IB2B"
    B2 = "B2"
    B2A = "B2A"
    B3 = "B3"

    @property
    def frequency_hz(self) -> float:
        return _FREQUENCIES_HZ[self.value]

    @property
    def wavelength_m(self) -> float:
        return LIGHT_SPEED_MPS / self.frequency_hz

    @property
    def is_primary(self) -> bool:
        """True for the L1/E1/B1 band used as the single-frequency reference."""

        return self in (Carrier.L1, Carrier.E1, Carrier.B1I, Carrier.B1AB1C)

    @classmethod
    def from_label(cls, label: str) -> "Carrier":
        key = label.strip().upper().replace(" ", "").replace("/", "")
        key = _ALIASES.get(key, key)
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown carrier label '{label}'") from None


def iono_scale(frequency_hz: float) -> float:
    """First-order ionosphere delay scale relative to L1."""

    return (L1_FREQUENCY_HZ / frequency_hz) ** 2
