"""Tests for the running coach tools and the stores behind them."""
from datetime import date, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool

from core.database import Base
from models import RunnerProfile, RunningEvent
from services import runner_profile as profile_store
from services.coach_tools import (
    ToolRegistry,
    ToolSpec,
    build_running_coach_tools,
    create_running_event,
    get_running_events,
    save_runner_profile,
)


def _event(db, day, category="running", type_="training", title=None):
    event = RunningEvent(date=day, category=category, type=type_, title=title, completed=0)
    db.add(event)
    db.commit()
    return event


class TestSaveRunnerProfile:
    def test_first_save_creates_the_single_profile(self, db_session):
        result = save_runner_profile(db_session, {"name": "Lucía", "pb10k": "45:30"})

        assert result["success"] is True
        assert result["message"] == "Perfil actualizado correctamente"
        assert set(result["savedFields"]) == {"name", "pb10k"}
        rows = db_session.query(RunnerProfile).all()
        assert len(rows) == 1
        assert rows[0].pb10k == "45:30"

    def test_additional_info_is_shallow_merged(self, db_session):
        save_runner_profile(db_session, {"additionalInfo": {"shoes": "X"}})
        save_runner_profile(db_session, {"additionalInfo": {"watch": "Y"}})

        profile = profile_store.get_runner_profile(db_session)
        assert profile.additional_info == {"shoes": "X", "watch": "Y"}

    def test_additional_info_new_value_overrides_same_key(self, db_session):
        save_runner_profile(db_session, {"additionalInfo": {"shoes": "X", "gels": 2}})
        save_runner_profile(db_session, {"additionalInfo": {"shoes": "Z"}})

        assert profile_store.get_runner_profile(db_session).additional_info == {"shoes": "Z", "gels": 2}

    def test_omitted_scalar_keeps_previous_value(self, db_session):
        save_runner_profile(db_session, {"currentGoal": "sub-20 5K"})
        save_runner_profile(db_session, {"weeklyKm": 50})

        profile = profile_store.get_runner_profile(db_session)
        assert profile.current_goal == "sub-20 5K"
        assert profile.weekly_km == 50.0

    def test_numeric_fields_are_coerced(self, db_session):
        result = save_runner_profile(db_session, {"age": "34", "weight": "70.5", "maxTimePerSession": 89.6})

        profile = profile_store.get_runner_profile(db_session)
        assert (profile.age, profile.weight, profile.max_time_per_session) == (34, 70.5, 90)
        assert set(result["savedFields"]) == {"age", "weight", "maxTimePerSession"}

    def test_uncoercible_number_is_skipped(self, db_session):
        result = save_runner_profile(db_session, {"age": "treinta", "name": "Ana"})

        assert result["savedFields"] == ["name"]
        assert profile_store.get_runner_profile(db_session).age is None

    def test_unknown_keys_only_is_a_no_op(self, db_session):
        result = save_runner_profile(db_session, {"favouriteColour": "azul"})

        assert result == {"success": True, "message": "No hay datos para actualizar", "savedFields": []}
        assert db_session.query(RunnerProfile).count() == 0


class TestProfileSingleton:
    def test_get_or_create_returns_the_same_row(self, db_session):
        first = profile_store.get_or_create_runner_profile(db_session)
        second = profile_store.get_or_create_runner_profile(db_session)
        assert first.id == second.id
        assert db_session.query(RunnerProfile).count() == 1

    def test_concurrent_first_write_reuses_the_winner(self, db_session):
        winner = RunnerProfile(singleton_key=1, name="winner")
        db_session.add(winner)
        db_session.commit()

        real_get = profile_store.get_runner_profile
        # The first read misses, as if the other request had not committed yet.
        with patch.object(profile_store, "get_runner_profile", side_effect=[None, real_get(db_session)]):
            profile = profile_store.get_or_create_runner_profile(db_session)

        assert profile.name == "winner"
        assert db_session.query(RunnerProfile).count() == 1

    def test_coach_notes_are_appended(self, db_session):
        profile_store.append_coach_notes(db_session, "Rodilla sensible")
        profile = profile_store.append_coach_notes(db_session, "Prefiere mañanas")
        assert profile.coach_notes == "Rodilla sensible\n\n---\n\nPrefiere mañanas"


class TestGetRunningEvents:
    def test_defaults_window_order_and_limit(self, db_session):
        today = date(2025, 6, 15)
        for offset in (31, -31, 30, -30, 0):
            _event(db_session, today + timedelta(days=offset), title=str(offset))

        result = get_running_events(db_session, {}, today=today)

        assert result["success"] is True
        assert [e["title"] for e in result["events"]] == ["-30", "0", "30"]
        assert result["count"] == 3
        assert result["range"] == {"startDate": "2025-05-16", "endDate": "2025-07-15"}

    def test_default_limit_is_twenty(self, db_session):
        today = date(2025, 6, 15)
        for offset in range(25):
            _event(db_session, today + timedelta(days=offset))

        result = get_running_events(db_session, {}, today=today)

        assert result["count"] == 20
        dates = [e["date"] for e in result["events"]]
        assert dates == sorted(dates)

    def test_category_filter_and_explicit_range(self, db_session):
        _event(db_session, date(2025, 6, 1), category="running")
        _event(db_session, date(2025, 6, 2), category="personal", type_="appointment")
        _event(db_session, date(2025, 7, 1), category="personal", type_="appointment")

        result = get_running_events(
            db_session,
            {"startDate": "2025-06-01", "endDate": "2025-06-30", "category": "personal"},
        )

        assert result["count"] == 1
        assert result["events"][0]["type"] == "appointment"

    def test_empty_result_is_not_an_error(self, db_session):
        result = get_running_events(db_session, {"startDate": "2030-01-01", "endDate": "2030-01-31"})
        assert result["success"] is True
        assert result["events"] == []
        assert result["count"] == 0

    def test_invalid_date(self, db_session):
        result = get_running_events(db_session, {"startDate": "mañana"})
        assert result["success"] is False


class TestCreateRunningEvent:
    def test_creates_with_defaults(self, db_session):
        result = create_running_event(db_session, {"date": "2025-06-01", "type": "race", "title": "Maratón"})

        assert result["success"] is True
        assert result["event"]["title"] == "Maratón"
        event = db_session.query(RunningEvent).one()
        assert event.date == date(2025, 6, 1)
        assert event.category == "running"
        assert event.completed == 0
        assert event.distance is None

    def test_requires_date_and_type(self, db_session):
        result = create_running_event(db_session, {"title": "Sin fecha"})

        assert result["success"] is False
        assert "date" in result["message"] and "type" in result["message"]
        assert db_session.query(RunningEvent).count() == 0

    @pytest.mark.parametrize("category, stored", [
        ("personal", "personal"),
        ("all", "running"),
        ("runing", "running"),
        (None, "running"),
    ])
    def test_category_outside_the_known_set_falls_back_to_running(self, db_session, category, stored):
        result = create_running_event(db_session, {"date": "2025-06-01", "type": "race", "category": category})

        assert result["event"]["category"] == stored
        assert db_session.query(RunningEvent).one().category == stored


class TestToolRegistry:
    def test_declarations_cover_all_tools(self, db_session):
        registry = build_running_coach_tools(db_session)
        names = [d["function"]["name"] for d in registry.declarations()]
        assert names == ["save_runner_profile", "get_running_events", "create_running_event"]
        assert all(d["type"] == "function" for d in registry.declarations())

    def test_unknown_tool_is_a_failure_result(self, db_session):
        result = build_running_coach_tools(db_session).dispatch("delete_everything", {})
        assert result["success"] is False

    def test_handler_exception_becomes_failure_result(self):
        def boom(args):
            raise RuntimeError("database is down")

        registry = ToolRegistry([
            ToolSpec(name="save_runner_profile", description="", parameters={}, handler=boom,
                     error_message="Error al guardar el perfil"),
        ])
        assert registry.dispatch("save_runner_profile", {}) == {
            "success": False,
            "message": "Error al guardar el perfil",
        }

    def test_notifications(self, db_session):
        registry = build_running_coach_tools(db_session)

        saved = registry.dispatch("save_runner_profile", {"pb5k": "19:59"})
        assert registry.notification("save_runner_profile", {"pb5k": "19:59"}, saved) == {
            "toolExecuted": "save_runner_profile",
            "profileSaved": True,
            "savedFields": ["pb5k"],
        }

        args = {"date": "2025-06-01", "type": "race"}
        created = registry.dispatch("create_running_event", args)
        assert registry.notification("create_running_event", args, created) == {
            "toolExecuted": "create_running_event",
            "eventCreated": True,
        }

        found = registry.dispatch("get_running_events", {"startDate": "2025-06-01", "endDate": "2025-06-01"})
        assert registry.notification("get_running_events", {}, found) == {
            "toolExecuted": "get_running_events",
            "eventsFound": 1,
        }

    @pytest.mark.parametrize("name", ["nope", ""])
    def test_notification_for_unknown_tool(self, db_session, name):
        registry = build_running_coach_tools(db_session)
        assert registry.notification(name, {}, {"success": False}) == {"toolExecuted": name}

    def test_limit_range_is_declared(self, db_session):
        declarations = {d["function"]["name"]: d["function"] for d in build_running_coach_tools(db_session).declarations()}
        limit = declarations["get_running_events"]["parameters"]["properties"]["limit"]
        assert "entre 1 y 100" in limit["description"]

    def test_close_returns_the_connection_to_the_pool(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'coach.db'}",
            poolclass=QueuePool,
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(bind=engine)
        registry = build_running_coach_tools(sessionmaker(bind=engine)())

        result = registry.dispatch("get_running_events", {})
        assert result["success"] is True
        assert engine.pool.checkedout() == 1

        registry.close()
        registry.close()
        assert engine.pool.checkedout() == 0
        engine.dispose()
