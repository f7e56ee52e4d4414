from __future__ import annotations

from typing import Any, Optional

import pytest
from typer.testing import CliRunner

from stretch_break import cli
from stretch_break.errors import InvalidOperation, StretchBreakError

WIDGET_INFO = {
    "normal_timer_value": "12:03",
    "prebreak_timer_value": "",
    "countdown_to_reset_value": "1:20",
    "overdue_value": "",
    "presence_mode": {"type": "muted", "until": None},
    "snoozed_until_time": None,
    "reading_mode": False,
}


class FakeClient:
    calls: list[tuple[str, Any]] = []
    fail_with: Optional[Exception] = None

    def __init__(self, base_url: str) -> None:
        self.base_url = base_url

    def _record(self, name: str, arg: Any = None) -> dict[str, Any]:
        if FakeClient.fail_with is not None:
            raise FakeClient.fail_with
        FakeClient.calls.append((name, arg))
        return WIDGET_INFO

    def widget_info(self) -> dict[str, Any]:
        return self._record("widget_info")

    def snooze_for(self, minutes: float) -> dict[str, Any]:
        return self._record("snooze_for", minutes)

    def mute(self, minutes: Optional[float] = None) -> dict[str, Any]:
        return self._record("mute", minutes)

    def unmute(self) -> dict[str, Any]:
        return self._record("unmute")

    def trigger_break(self) -> dict[str, Any]:
        return self._record("trigger_break")

    def skip_break(self) -> dict[str, Any]:
        return self._record("skip_break")

    def postpone_break(self, minutes: float) -> dict[str, Any]:
        return self._record("postpone_break", minutes)

    def set_reading_mode(self, value: bool) -> dict[str, Any]:
        return self._record("set_reading_mode", value)


@pytest.fixture
def runner(monkeypatch) -> CliRunner:
    FakeClient.calls = []
    FakeClient.fail_with = None
    monkeypatch.setattr(cli, "BreakServiceClient", FakeClient)
    return CliRunner()


@pytest.mark.parametrize(
    "args, expected",
    [
        (["snooze-for", "15"], ("snooze_for", 15)),
        (["mute"], ("mute", None)),
        (["mute", "--minutes", "30"], ("mute", 30.0)),
        (["unmute"], ("unmute", None)),
        (["break"], ("trigger_break", None)),
        (["skip-break"], ("skip_break", None)),
        (["postpone", "5"], ("postpone_break", 5.0)),
        (["set-reading-mode", "true"], ("set_reading_mode", True)),
        (["set-reading-mode", "false"], ("set_reading_mode", False)),
    ],
)
def test_commands_reach_the_service(runner, args, expected) -> None:
    result = runner.invoke(cli.app, args)

    assert result.exit_code == 0, result.output
    assert FakeClient.calls == [expected]


@pytest.mark.parametrize(
    "command, expected",
    [
        ("time-to-break", "12:03"),
        ("time-to-reset", "1:20"),
        ("overtime", ""),
        ("presence-mode", "muted"),
    ],
)
def test_widget_api_prints_single_value(runner, command, expected) -> None:
    result = runner.invoke(cli.app, ["widget-api", command])

    assert result.exit_code == 0, result.output
    assert result.stdout == expected


def test_rejected_command_exits_with_error(runner) -> None:
    FakeClient.fail_with = InvalidOperation("Cannot snooze while a break is in progress.")

    result = runner.invoke(cli.app, ["snooze-for", "5"])

    assert result.exit_code == 1


def test_service_error_exits_with_error(runner) -> None:
    FakeClient.fail_with = StretchBreakError("Request to /api/postpone failed with HTTP 422")

    result = runner.invoke(cli.app, ["postpone", "5"])

    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)


def test_presence_mode_collapses_timer_states() -> None:
    info = dict(WIDGET_INFO, presence_mode={"type": "prebreak", "until": None})
    assert cli.widget_value(info, cli.WidgetApiCommand.presence_mode) == "active"
