"""
Field derotation for alt-az mounts driven through TheSkyX.

An alt-az mount tracking an object lets the field rotate around the optical
axis. This loop asks TheSkyX where the mount points, integrates the field
rotation rate and turns the camera rotator by whole step sizes to cancel it.

Run:
  unspinned --host 192.168.1.20 --rate sidereal --step-size 0.001
"""
from __future__ import annotations

import argparse
import dataclasses
import logging
import math
import time
from typing import Callable, Optional, Sequence

import serial

from coords import Degrees, Radians
from lib.logging_setup import setup_logging
from theskyx import TheSkyXClient, TheSkyXConstants, TheSkyXError, TheSkyXProtocolError, TheSkyXState

LOGGER = logging.getLogger("derotator")


class DerotatorConstants:
    DEFAULT_HOST = TheSkyXConstants.DEFAULT_HOST
    DEFAULT_PORT = TheSkyXConstants.DEFAULT_PORT
    DEFAULT_TRACKING_RATE = "sidereal"
    DEFAULT_STEP_SIZE = 0.001
    DEFAULT_POLL_INTERVAL_S = 0.05
    DEFAULT_LOG_LEVEL = "INFO"
    MIN_PORT = 1
    MAX_PORT = 65535
    EXIT_OK = 0
    EXIT_FAILURE = 1


TRACKING_RATES: dict[str, Radians] = {
    "sidereal": Radians(0.00007292115),
    "lunar": Radians(0.0000711948891),
    "solar": Radians(0.0000727221),
}


class DerotatorConfigError(ValueError):
    pass


def format_tracking_rates() -> str:
    return ", ".join(f"'{name}'" for name in TRACKING_RATES)


def parse_tracking_rate(value: str) -> Radians:
    rate = TRACKING_RATES.get(value)
    if rate is not None:
        return rate
    try:
        return Radians(float(value))
    except ValueError as exc:
        raise DerotatorConfigError(f"invalid tracking rate {value!r}") from exc


@dataclasses.dataclass(frozen=True)
class DerotatorConfig:
    tracking_rate: Radians
    host: str = DerotatorConstants.DEFAULT_HOST
    port: int = DerotatorConstants.DEFAULT_PORT
    step_size: Degrees = Degrees(DerotatorConstants.DEFAULT_STEP_SIZE)
    poll_interval_s: float = DerotatorConstants.DEFAULT_POLL_INTERVAL_S
    timeout_s: Optional[float] = None
    tracking_rate_name: str = DerotatorConstants.DEFAULT_TRACKING_RATE

    def __post_init__(self) -> None:
        if not self.host:
            raise DerotatorConfigError("Host is required.")
        if self.port < DerotatorConstants.MIN_PORT or self.port > DerotatorConstants.MAX_PORT:
            raise DerotatorConfigError(f"Port out of range: {self.port!r}")
        if not math.isfinite(self.tracking_rate):
            raise DerotatorConfigError(f"Tracking rate must be finite: {self.tracking_rate!r}")
        if not self.step_size > 0 or not math.isfinite(self.step_size):
            raise DerotatorConfigError(f"Step size must be positive: {self.step_size!r}")
        if self.poll_interval_s < 0:
            raise DerotatorConfigError("Poll interval must be non-negative.")
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise DerotatorConfigError("Timeout must be positive.")


def field_rotation_rate(tracking_rate: Radians, state: TheSkyXState) -> Radians:
    # -trackingRate * cos(az) * cos(lat) / cos(alt)
    return Radians(
        -tracking_rate
        * math.cos(state.pointing_at.az.to_radians())
        * math.cos(state.latitude.to_radians())
        / math.cos(state.pointing_at.alt.to_radians())
    )


class Derotator:
    def __init__(
        self,
        client: TheSkyXClient,
        config: DerotatorConfig,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.config = config
        self.log = logger or LOGGER
        self._clock = clock
        self._sleep = sleep
        self._last: Optional[float] = None
        self.state: Optional[TheSkyXState] = None
        self.total_delta = Degrees(0.0)
        self.communicated_delta = Degrees(0.0)

    def start(self) -> TheSkyXState:
        self.state = self.client.get_state()
        self._last = self._clock()
        self.log.info(
            "start lat=%.4f alt=%.4f az=%.4f rotator=%.4f",
            self.state.latitude,
            self.state.pointing_at.alt,
            self.state.pointing_at.az,
            self.state.rotator_angle,
        )
        return self.state

    def step(self, now: Optional[float] = None) -> Optional[Degrees]:
        """Advance the integration to `now`; returns the rotation sent, if any."""
        if self.state is None or self._last is None:
            raise RuntimeError("derotator not started")
        now = self._clock() if now is None else now
        rate = field_rotation_rate(self.config.tracking_rate, self.state)
        self.total_delta = Degrees(self.total_delta + Radians(rate * (now - self._last)).to_degrees())
        self._last = now

        pending = self.total_delta - self.communicated_delta
        if abs(pending) <= self.config.step_size:
            return None
        delta = Degrees(pending - math.fmod(pending, self.config.step_size))
        try:
            state = self.client.rotate(Degrees(self.state.rotator_angle + delta))
        except TheSkyXProtocolError as exc:
            if not exc.is_rotator_busy():
                raise
            self.log.debug("rotator busy, retrying later: %s", exc)
            return None
        self.state = state
        self.communicated_delta = Degrees(self.communicated_delta + delta)
        self.log.info(
            "rotated %.6f degrees (%.6f total), rotation rate = %.8f deg/sec, tracking rate = %s, current = %.6f",
            delta,
            self.communicated_delta,
            rate.to_degrees(),
            self.config.tracking_rate_name,
            state.rotator_angle,
        )
        return delta

    def run(self, iterations: Optional[int] = None) -> None:
        self.start()
        count = 0
        while iterations is None or count < iterations:
            self.step()
            count += 1
            if self.config.poll_interval_s:
                self._sleep(self.config.poll_interval_s)


def create_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="unspinned", description="Field derotation through TheSkyX's rotator.")
    ap.add_argument(
        "--rate",
        default=DerotatorConstants.DEFAULT_TRACKING_RATE,
        help=(
            f"Tracking rate, '{DerotatorConstants.DEFAULT_TRACKING_RATE}' by default. "
            f"One of {format_tracking_rates()}, or a custom value in radians/second."
        ),
    )
    ap.add_argument("--host", default=DerotatorConstants.DEFAULT_HOST, help="host running TheSkyX")
    ap.add_argument("--port", type=int, default=DerotatorConstants.DEFAULT_PORT, help="TheSkyX TCP server port")
    ap.add_argument(
        "--step-size",
        type=float,
        default=DerotatorConstants.DEFAULT_STEP_SIZE,
        help="rotator step size in degrees",
    )
    ap.add_argument(
        "--poll-interval",
        type=float,
        default=DerotatorConstants.DEFAULT_POLL_INTERVAL_S,
        help="seconds between integration steps",
    )
    ap.add_argument("--timeout", type=float, default=None, help="socket read timeout in seconds (default: block)")
    ap.add_argument("--log-level", default=DerotatorConstants.DEFAULT_LOG_LEVEL)
    return ap


def config_from_args(args: argparse.Namespace) -> DerotatorConfig:
    return DerotatorConfig(
        tracking_rate=parse_tracking_rate(args.rate),
        tracking_rate_name=args.rate,
        host=args.host,
        port=args.port,
        step_size=Degrees(args.step_size),
        poll_interval_s=args.poll_interval,
        timeout_s=args.timeout,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)
    try:
        setup_logging(args.log_level)
        config = config_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    try:
        client = TheSkyXClient.connect(config.host, config.port, timeout_s=config.timeout_s)
    except (serial.SerialException, OSError) as exc:
        LOGGER.error("error connecting to TheSkyX on '%s:%s': %s", config.host, config.port, exc)
        return DerotatorConstants.EXIT_FAILURE

    with client:
        try:
            Derotator(client, config).run()
        except (TheSkyXError, serial.SerialException, OSError) as exc:
            LOGGER.error("error communicating with TheSkyX: %s", exc)
            return DerotatorConstants.EXIT_FAILURE
        except KeyboardInterrupt:
            LOGGER.info("Interrupted, stopping")
    return DerotatorConstants.EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
