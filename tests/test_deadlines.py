# =============================================================================
# Unit Tests — Deadline Tools
# =============================================================================
#
# Holiday calendar, deadline counting and urgency classification. "Today"
# is injected so every expectation is a fixed date.
# =============================================================================

from __future__ import annotations

import asyncio
from datetime import date

from legal_ai.tools.catalog import build_tool_registry
from legal_ai.tools.deadlines import (
    brazilian_holidays,
    calculate_deadline,
    easter_sunday,
    is_business_day,
    urgency_for,
)
from legal_ai.tools.entities import FOLDER_NOT_FOUND
from tests.fakes import FakeEntities, FakeRag


def _run(coro):
    return asyncio.run(coro)


def _registry(today: date, entities: FakeEntities | None = None):
    return build_tool_registry(entities or FakeEntities(), FakeRag(), today=lambda: today)


# ---------------------------------------------------------------------------
# Test: Holiday calendar
# ---------------------------------------------------------------------------


class TestHolidays:
    def test_easter_dates(self):
        assert easter_sunday(2024) == date(2024, 3, 31)
        assert easter_sunday(2025) == date(2025, 4, 20)
        assert easter_sunday(2026) == date(2026, 4, 5)

    def test_movable_holidays_2025(self):
        holidays = brazilian_holidays(2025)
        assert holidays[date(2025, 3, 3)] == "Carnaval"
        assert holidays[date(2025, 3, 4)] == "Carnaval"
        assert holidays[date(2025, 4, 18)] == "Sexta-feira Santa"
        assert holidays[date(2025, 6, 19)] == "Corpus Christi"

    def test_fixed_holidays(self):
        holidays = brazilian_holidays(2030)
        assert holidays[date(2030, 4, 21)] == "Tiradentes"
        assert holidays[date(2030, 11, 20)] == "Dia Nacional de Zumbi e da Consciência Negra"
        assert holidays[date(2030, 12, 25)] == "Natal"

    def test_business_day(self):
        assert is_business_day(date(2025, 4, 22))  # Tuesday
        assert not is_business_day(date(2025, 4, 21))  # Tiradentes
        assert not is_business_day(date(2025, 4, 19))  # Saturday


# ---------------------------------------------------------------------------
# Test: Deadline counting
# ---------------------------------------------------------------------------


class TestCalculateDeadline:
    def test_business_days_skip_weekend_and_holidays(self):
        deadline, holidays = calculate_deadline(date(2025, 4, 14), 5)
        assert deadline == date(2025, 4, 23)
        assert holidays == [date(2025, 4, 18), date(2025, 4, 21)]

    def test_calendar_days(self):
        deadline, holidays = calculate_deadline(date(2025, 1, 1), 10, "corridos")
        assert deadline == date(2025, 1, 11)
        assert holidays == []

    def test_doubled(self):
        deadline, _ = calculate_deadline(date(2025, 1, 3), 5, doubled=True)
        assert deadline == date(2025, 1, 17)

    def test_zero_days(self):
        deadline, _ = calculate_deadline(date(2025, 1, 3), 0)
        assert deadline == date(2025, 1, 3)


class TestUrgency:
    def test_scale(self):
        assert urgency_for(-1) == "critical"
        assert urgency_for(3) == "critical"
        assert urgency_for(4) == "attention"
        assert urgency_for(7) == "attention"
        assert urgency_for(8) == "normal"


# ---------------------------------------------------------------------------
# Test: Tools
# ---------------------------------------------------------------------------


class TestCalculateDeadlineTool:
    def test_pending_deadline(self):
        registry = _registry(date(2025, 4, 20))
        result = _run(
            registry.execute(
                "calculate_deadline",
                '{"start_date": "2025-04-14", "days": 5, "count_type": "úteis"}',
                7,
            )
        )
        assert result["deadline_date"] == "2025-04-23"
        assert result["days_remaining"] == 3
        assert result["urgency"] == "critical"
        assert result["is_expired"] is False
        assert result["holidays_in_period"] == ["2025-04-18", "2025-04-21"]
        assert result["message"] == "Prazo vence em 3 dias (23/04/2025)"

    def test_expired_deadline(self):
        registry = _registry(date(2025, 5, 1))
        result = _run(
            registry.execute(
                "calculate_deadline",
                {"start_date": "2025-04-14", "days": 5, "count_type": "úteis"},
                7,
            )
        )
        assert result["is_expired"] is True
        assert result["message"] == "PRAZO VENCIDO há 8 dias!"

    def test_doubled_flag_given_as_text(self):
        registry = _registry(date(2025, 4, 14))
        plain = _run(
            registry.execute(
                "calculate_deadline",
                {"start_date": "2025-04-14", "days": 5, "doubled": "false"},
                7,
            )
        )
        doubled = _run(
            registry.execute(
                "calculate_deadline",
                {"start_date": "2025-04-14", "days": 5, "doubled": "true"},
                7,
            )
        )

        assert plain["doubled"] is False
        assert plain["total_days"] == 5
        assert plain["deadline_date"] == "2025-04-23"
        assert doubled["doubled"] is True
        assert doubled["total_days"] == 10

    def test_invalid_date_is_an_error_value(self):
        registry = _registry(date(2025, 5, 1))
        result = _run(
            registry.execute(
                "calculate_deadline", {"start_date": "14/04/2025", "days": 5}, 7,
            )
        )
        assert "error" in result


class TestCheckHolidaysTool:
    def test_holidays_in_range(self):
        registry = _registry(date(2025, 4, 1))
        result = _run(
            registry.execute(
                "check_holidays", {"start_date": "2025-04-14", "end_date": "2025-04-25"}, 7,
            )
        )
        assert result["total_holidays"] == 2
        assert result["holidays"][0] == {
            "date": "2025-04-18",
            "name": "Sexta-feira Santa",
            "weekday": "sexta-feira",
        }
        assert result["holidays"][1]["weekday"] == "segunda-feira"
        assert result["business_days"] == 8

    def test_reversed_range(self):
        registry = _registry(date(2025, 4, 1))
        result = _run(
            registry.execute(
                "check_holidays", {"start_date": "2025-04-25", "end_date": "2025-04-14"}, 7,
            )
        )
        assert "error" in result


class TestListUrgenciesTool:
    def _entities(self) -> FakeEntities:
        entities = FakeEntities()
        entities.tasks = [
            {"id": 1, "folder_id": 10, "title": "Contestar", "due_date": "2025-04-22", "status": "pending"},
            {"id": 2, "folder_id": 10, "title": "Feita", "due_date": "2025-04-21", "status": "completed"},
            {"id": 3, "folder_id": 10, "title": "Longe", "due_date": "2025-06-01", "status": "pending"},
        ]
        entities.movements = [
            {"id": 9, "folder_id": 10, "description": "Intimação", "deadline_date": "2025-04-20"},
        ]
        return entities

    def test_sorted_by_days_remaining(self):
        registry = _registry(date(2025, 4, 19), self._entities())
        result = _run(registry.execute("list_urgencies", {"folder_id": 10}, 7))

        assert result["threshold_days"] == 7
        assert [(u["source"], u["id"]) for u in result["urgencies"]] == [
            ("movement", 9),
            ("task", 1),
        ]
        assert result["urgencies"][0]["urgency"] == "critical"

    def test_other_users_folder(self):
        registry = _registry(date(2025, 4, 19), self._entities())
        result = _run(registry.execute("list_urgencies", {"folder_id": 10}, 8))
        assert result == {"error": FOLDER_NOT_FOUND}


class TestTrackProcessTool:
    def test_invalid_cnj(self):
        registry = _registry(date(2025, 4, 19))
        result = _run(registry.execute("track_process", {"cnj_number": "123"}, 7))
        assert "error" in result

    def test_owned_process(self):
        entities = FakeEntities()
        entities.movements = [{"id": 1, "folder_id": 10, "description": "Sentença publicada"}]
        registry = _registry(date(2025, 4, 19), entities)

        result = _run(
            registry.execute("track_process", {"cnj_number": "0001234-56.2024.8.26.0100"}, 7)
        )

        assert result["folder_id"] == 10
        assert result["total"] == 1

    def test_process_of_another_user(self):
        registry = _registry(date(2025, 4, 19))
        result = _run(
            registry.execute("track_process", {"cnj_number": "0001234-56.2024.8.26.0100"}, 8)
        )
        assert result == {"error": FOLDER_NOT_FOUND}
