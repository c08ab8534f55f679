from __future__ import annotations

import math


class Degrees(float):
    def to_radians(self) -> "Radians":
        return Radians(self * math.pi / 180.0)


class Radians(float):
    def to_degrees(self) -> Degrees:
        return Degrees(self * 180 / math.pi)


def wrap_deg(deg: float) -> Degrees:
    deg = deg % 360.0
    if deg < 0:
        deg += 360.0
    return Degrees(deg)
