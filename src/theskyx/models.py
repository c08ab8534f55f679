from __future__ import annotations

import dataclasses
from typing import Any, Mapping

from coords import Degrees

from .protocol import TheSkyXDecodeError


class TheSkyXField:
    LONGITUDE = "Longitude"
    LATITUDE = "Latitude"
    ROTATOR_ANGLE = "RotatorAngle"
    POINTING_AT = "PointingAt"
    ALT = "Alt"
    AZ = "Az"
    DEFAULT = 0.0


def _degrees(payload: Mapping[str, Any], key: str) -> Degrees:
    value = payload.get(key, TheSkyXField.DEFAULT)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TheSkyXDecodeError(f"field {key!r} is not a number: {value!r}")
    return Degrees(value)


def _mapping(value: Any, key: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TheSkyXDecodeError(f"field {key!r} is not an object: {value!r}")
    return value


@dataclasses.dataclass(frozen=True)
class TheSkyXAltAz:
    alt: Degrees
    az: Degrees

    @classmethod
    def from_json(cls, payload: Any) -> "TheSkyXAltAz":
        payload = _mapping(payload, TheSkyXField.POINTING_AT)
        return cls(
            alt=_degrees(payload, TheSkyXField.ALT),
            az=_degrees(payload, TheSkyXField.AZ),
        )


@dataclasses.dataclass(frozen=True)
class TheSkyXState:
    longitude: Degrees
    latitude: Degrees
    rotator_angle: Degrees
    pointing_at: TheSkyXAltAz

    @classmethod
    def from_json(cls, payload: Any) -> "TheSkyXState":
        """Build a state from a decoded reply; absent fields read as zero."""
        payload = _mapping(payload, "response")
        return cls(
            longitude=_degrees(payload, TheSkyXField.LONGITUDE),
            latitude=_degrees(payload, TheSkyXField.LATITUDE),
            rotator_angle=_degrees(payload, TheSkyXField.ROTATOR_ANGLE),
            pointing_at=TheSkyXAltAz.from_json(payload.get(TheSkyXField.POINTING_AT, {})),
        )

    def to_json(self) -> dict[str, Any]:
        return {
            TheSkyXField.LONGITUDE: float(self.longitude),
            TheSkyXField.LATITUDE: float(self.latitude),
            TheSkyXField.ROTATOR_ANGLE: float(self.rotator_angle),
            TheSkyXField.POINTING_AT: {
                TheSkyXField.ALT: float(self.pointing_at.alt),
                TheSkyXField.AZ: float(self.pointing_at.az),
            },
        }
