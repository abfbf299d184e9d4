"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import pytest


class Wire:
    """Stands in for the transport: records written lines and idle frames."""

    def __init__(self) -> None:
        self.lines: list[str] = []
        self.notifications: list[str] = []

    def write(self, line: str) -> None:
        self.lines.append(line)

    def notify(self, frame: str) -> None:
        self.notifications.append(frame)


@pytest.fixture
def wire() -> Wire:
    """Fresh line recorder for arbiter tests."""
    return Wire()
