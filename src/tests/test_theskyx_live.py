from __future__ import annotations

import dataclasses
import logging
import os
from typing import Iterator

import pytest

from coords import Degrees
from theskyx import TheSkyXClient, TheSkyXConstants, TheSkyXProtocolError

LOGGER = logging.getLogger("tests.theskyx.live")


@dataclasses.dataclass(frozen=True)
class TheSkyXTestConfig:
    host: str
    port: int
    timeout_s: float

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("Host is required.")
        if self.port <= 0:
            raise ValueError("Port must be positive.")
        if self.timeout_s <= 0:
            raise ValueError("Timeout must be positive.")


@pytest.fixture(scope="session")
def theskyx_config() -> TheSkyXTestConfig:
    host = os.environ.get("THESKYX_HOST", "")
    if not host:
        LOGGER.info("SKIP THESKYX_HOST is not set; skipping live tests.")
        pytest.skip("THESKYX_HOST is not set; skipping live tests.")
    return TheSkyXTestConfig(
        host=host,
        port=int(os.environ.get("THESKYX_PORT", str(TheSkyXConstants.DEFAULT_PORT))),
        timeout_s=float(os.environ.get("THESKYX_TIMEOUT_S", "5.0")),
    )


@pytest.fixture(scope="session")
def theskyx_client(theskyx_config: TheSkyXTestConfig) -> Iterator[TheSkyXClient]:
    LOGGER.info("STEP connect host=%s port=%s", theskyx_config.host, theskyx_config.port)
    with TheSkyXClient.connect(theskyx_config.host, theskyx_config.port, timeout_s=theskyx_config.timeout_s) as client:
        yield client


def test_read_state(theskyx_client: TheSkyXClient) -> None:
    state = theskyx_client.get_state()
    LOGGER.info(
        "STATE lat=%s lon=%s rotator=%s alt=%s az=%s",
        state.latitude,
        state.longitude,
        state.rotator_angle,
        state.pointing_at.alt,
        state.pointing_at.az,
    )
    assert -90.0 <= state.latitude <= 90.0


def test_rotate_in_place(theskyx_client: TheSkyXClient) -> None:
    state = theskyx_client.get_state()
    LOGGER.info("STEP rotate angle=%s", state.rotator_angle)
    try:
        after = theskyx_client.rotate(Degrees(state.rotator_angle))
    except TheSkyXProtocolError as exc:
        LOGGER.info("ACTION rotate_refused number=%s message=%s", exc.error_number, exc.message)
        assert exc.message
        return
    assert after.rotator_angle == pytest.approx(state.rotator_angle, abs=0.1)
    assert theskyx_client.get_state().latitude == state.latitude
