"""
Tests for the command line host.
"""

import json
import shutil
from pathlib import Path

import pendulum
import pytest
from typer.testing import CliRunner

from slotbooker import __version__
from slotbooker.cli.app import app

runner = CliRunner()

EXAMPLE_DATA = Path(__file__).resolve().parent.parent / "slotbooker_data.example.json"


@pytest.fixture
def workspace(tmp_path):
    """A config file pointing at a copy of the example data file."""
    shutil.copy(EXAMPLE_DATA, tmp_path / "data.json")
    config_path = tmp_path / "slotbooker.yaml"
    config_path.write_text("timezone: Europe/Berlin\ndata_file: data.json\n", encoding="utf-8")
    return tmp_path


def _next_monday():
    return pendulum.now("Europe/Berlin").next(pendulum.MONDAY).add(weeks=1).to_date_string()


def _invoke(workspace, *args):
    return runner.invoke(app, [*args, "--config", str(workspace / "slotbooker.yaml")])


def _data(workspace):
    return json.loads((workspace / "data.json").read_text(encoding="utf-8"))


def _book(workspace, time="9:00 AM", user="pat-1"):
    return _invoke(workspace, "book", "dr-lee", _next_monday(), time, "--user", user, "--reason", "Checkup")


def test_book_writes_both_documents(workspace):
    result = _book(workspace)

    assert result.exit_code == 0, result.output
    assert "Appointment scheduled" in result.output

    data = _data(workspace)
    [appointment] = data["appointments"]
    assert appointment["time"] == "09:00"
    assert appointment["status"] == "UPCOMING"
    monday_morning = data["providers"][0]["windows"][0]
    assert monday_morning["booked_intervals"] == [
        {"start_time": "09:00", "end_time": "10:00", "appointment_id": appointment["id"]}
    ]


def test_overlapping_booking_fails(workspace):
    _book(workspace)

    result = _book(workspace, time="9:30 AM", user="pat-2")

    assert result.exit_code == 1
    assert "slot_taken" in result.output
    assert len(_data(workspace)["appointments"]) == 1


def test_bad_date(workspace):
    result = _invoke(workspace, "book", "dr-lee", "25/11/2024", "9:00 AM", "--user", "pat-1")

    assert result.exit_code == 1
    assert "Could not parse date" in result.output


def test_cancel_frees_the_interval(workspace):
    _book(workspace)
    appointment_id = _data(workspace)["appointments"][0]["id"]

    result = _invoke(workspace, "cancel", appointment_id, "--user", "dr-lee", "--role", "provider")

    assert result.exit_code == 0, result.output
    data = _data(workspace)
    assert data["appointments"][0]["status"] == "CANCELLED"
    assert data["providers"][0]["windows"][0]["booked_intervals"] == []


def test_update_reschedules(workspace):
    _book(workspace)
    appointment_id = _data(workspace)["appointments"][0]["id"]

    result = _invoke(workspace, "update", appointment_id, "--user", "pat-1", "--time", "2:00 PM")

    assert result.exit_code == 0, result.output
    data = _data(workspace)
    assert data["appointments"][0]["time"] == "14:00"
    assert data["providers"][0]["windows"][0]["booked_intervals"] == []
    assert data["providers"][0]["windows"][1]["booked_intervals"][0]["start_time"] == "14:00"


def test_update_by_stranger_is_refused(workspace):
    _book(workspace)
    appointment_id = _data(workspace)["appointments"][0]["id"]

    result = _invoke(workspace, "update", appointment_id, "--user", "pat-2", "--notes", "hello")

    assert result.exit_code == 1
    assert "not_authorized" in result.output


def test_list_and_history(workspace):
    _book(workspace)

    listed = _invoke(workspace, "list", "--user", "pat-1")
    history = _invoke(workspace, "history", "pat-1", "--user", "dr-lee")

    assert listed.exit_code == 0, listed.output
    assert "Upcoming" in listed.output
    assert history.exit_code == 0, history.output
    assert "Sam Rivera" in history.output


def test_availability(workspace):
    _book(workspace)

    result = _invoke(workspace, "availability", "dr-lee", _next_monday())

    assert result.exit_code == 0, result.output
    assert "2 free range(s)" in result.output


def test_providers(workspace):
    result = _invoke(workspace, "providers")

    assert result.exit_code == 0, result.output
    assert "dr-lee" in result.output


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output
