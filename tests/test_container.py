"""Tests for container wiring."""

import asyncio

from assessment_engine.containers import build_container


def test_build_container_creates_services(settings) -> None:
    container = build_container(settings)

    assert container.assessment_service is not None
    assert container.sweeper.interval_seconds == settings.sweep_interval_seconds
    assert (
        container.assessment_service.duration_seconds
        == settings.assessment_duration_seconds
    )
    asyncio.run(container.close_resources())
