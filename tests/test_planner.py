"""Tests for the planning step and plan files."""

import json

import pytest

from zerog_agent.errors import PayloadParseError
from zerog_agent.models import PlanTask, TaskStatus
from zerog_agent.planner import Planner, load_plan, save_plan

PLAN_REPLY = (
    "Sure.\n<plan>\n"
    '[{"id": 1, "task": "Read src/main.py", "status": "pending"},'
    ' {"id": 2, "task": "Refactor login", "status": "pending"}]\n'
    "</plan>"
)


class TestPlanner:

    def test_create_plan(self, scripted_transport):
        transport = scripted_transport([PLAN_REPLY])
        plan = Planner(transport).create_plan("Refactor the login flow")

        assert [(t.id, t.description) for t in plan] == [(1, "Read src/main.py"), (2, "Refactor login")]
        assert transport.calls[0]["mode"] == "planner"
        assert transport.calls[0]["messages"] == [("user", "Refactor the login flow")]

    def test_slash_command_expanded(self, scripted_transport):
        transport = scripted_transport([PLAN_REPLY])
        Planner(transport).create_plan("/refactor auth.py")
        content = transport.calls[0]["messages"][0][1]
        assert content.startswith("Refactor this code")
        assert content.endswith("auth.py")

    def test_no_plan_in_reply(self, scripted_transport):
        planner = Planner(scripted_transport(["I need more details."]))
        assert planner.create_plan("do something") is None
        assert planner.last_reply == "I need more details."

    def test_transport_error_propagates(self, scripted_transport):
        planner = Planner(scripted_transport([ConnectionError("offline")]))
        with pytest.raises(ConnectionError):
            planner.create_plan("x")


class TestPlanFiles:

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "plan.json"
        save_plan([PlanTask(1, "A"), PlanTask(2, "B", TaskStatus.DONE)], path)

        assert json.loads(path.read_text(encoding="utf-8"))[1] == {"id": 2, "task": "B", "status": "done"}
        loaded = load_plan(path)
        assert [(t.id, t.status) for t in loaded] == [(1, TaskStatus.PENDING), (2, TaskStatus.DONE)]

    def test_load_invalid(self, tmp_path):
        path = tmp_path / "plan.json"
        path.write_text('[{"id": 1}]', encoding="utf-8")
        with pytest.raises(PayloadParseError):
            load_plan(path)

    def test_load_missing(self, tmp_path):
        with pytest.raises(PayloadParseError, match="cannot read"):
            load_plan(tmp_path / "nope.json")
