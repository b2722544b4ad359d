# =============================================================================
# Deadline Tools — Procedural Deadlines, Holidays, Urgencies
# =============================================================================
#
# Tools used by the deadline-manager agent:
#   - calculate_deadline: CPC/CLT deadline counting (business or calendar
#     days, doubled deadlines) over the Brazilian national holiday calendar
#   - check_holidays: national holidays inside a date range
#   - list_urgencies: open tasks and deadline movements of a case that fall
#     due within a threshold
#   - track_process: recent movements of a case, looked up by CNJ number
#
# HOLIDAY CALENDAR: fixed national holidays plus the Easter-based ones
# (Carnival Monday/Tuesday, Good Friday, Corpus Christi), computed for any
# year. State and municipal holidays are not covered.
#
# URGENCY SCALE (days remaining until the deadline):
#   <= 3 (or already expired) → critical
#   <= 7                      → attention
#   otherwise                 → normal
# =============================================================================

from __future__ import annotations

import re
from collections.abc import Callable
from datetime import date, timedelta
from typing import Any

from legal_ai.tools.base import Tool, clamp_limit, optional_bool, optional_int, required_int
from legal_ai.tools.entities import FOLDER_NOT_FOUND, EntityRepository

CNJ_PATTERN = re.compile(r"^\d{7}-\d{2}\.\d{4}\.\d\.\d{2}\.\d{4}$")

_WEEKDAYS = (
    "segunda-feira", "terça-feira", "quarta-feira", "quinta-feira",
    "sexta-feira", "sábado", "domingo",
)

_FIXED_HOLIDAYS = {
    (1, 1): "Confraternização Universal",
    (4, 21): "Tiradentes",
    (5, 1): "Dia do Trabalho",
    (9, 7): "Independência do Brasil",
    (10, 12): "Nossa Senhora Aparecida",
    (11, 2): "Finados",
    (11, 15): "Proclamação da República",
    (11, 20): "Dia Nacional de Zumbi e da Consciência Negra",
    (12, 25): "Natal",
}


def easter_sunday(year: int) -> date:
    """Gregorian Easter Sunday (anonymous Gregorian algorithm)."""
    a = year % 19
    b, c = divmod(year, 100)
    d, e = divmod(b, 4)
    f = (b + 8) // 25
    g = (b - f + 1) // 3
    h = (19 * a + b - d - g + 15) % 30
    i, k = divmod(c, 4)
    l = (32 + 2 * e + 2 * i - h - k) % 7  # noqa: E741
    m = (a + 11 * h + 22 * l) // 451
    month, day = divmod(h + l - 7 * m + 114, 31)
    return date(year, month, day + 1)


def brazilian_holidays(year: int) -> dict[date, str]:
    """National holidays for `year`, keyed by date."""
    holidays = {date(year, month, day): name for (month, day), name in _FIXED_HOLIDAYS.items()}
    easter = easter_sunday(year)
    holidays[easter - timedelta(days=48)] = "Carnaval"
    holidays[easter - timedelta(days=47)] = "Carnaval"
    holidays[easter - timedelta(days=2)] = "Sexta-feira Santa"
    holidays[easter + timedelta(days=60)] = "Corpus Christi"
    return holidays


def is_business_day(day: date) -> bool:
    return day.weekday() < 5 and day not in brazilian_holidays(day.year)


def urgency_for(days_remaining: int) -> str:
    if days_remaining <= 3:
        return "critical"
    if days_remaining <= 7:
        return "attention"
    return "normal"


def _parse_date(value: Any, field_name: str) -> date:
    try:
        return date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError):
        raise ValueError(f"Data inválida em {field_name}: use o formato YYYY-MM-DD") from None


def calculate_deadline(
    start_date: date,
    days: int,
    count_type: str = "úteis",
    doubled: bool = False,
) -> tuple[date, list[date]]:
    """
    Count `days` forward from `start_date` (the start day itself excluded).

    Returns:
        (deadline date, holidays skipped on the way). Holidays are only
        collected when counting business days.
    """
    total_days = days * 2 if doubled else days
    business = count_type != "corridos"

    current = start_date
    counted = 0
    holidays_in_period: list[date] = []
    while counted < total_days:
        current += timedelta(days=1)
        if not business:
            counted += 1
            continue
        if current in brazilian_holidays(current.year):
            holidays_in_period.append(current)
            continue
        if current.weekday() < 5:
            counted += 1
    return current, holidays_in_period


class CalculateDeadlineTool(Tool):
    name = "calculate_deadline"
    description = (
        "Calcula prazos processuais conforme CPC/CLT. Considera dias úteis, corridos, "
        "feriados nacionais e prazos em dobro."
    )
    parameters = {
        "type": "object",
        "properties": {
            "start_date": {"type": "string", "description": "Data de início do prazo (formato: YYYY-MM-DD)"},
            "days": {"type": "number", "description": "Quantidade de dias do prazo"},
            "count_type": {
                "type": "string",
                "enum": ["úteis", "corridos"],
                "description": "Tipo de contagem (úteis ou corridos)",
            },
            "doubled": {
                "type": "boolean",
                "description": "Prazo em dobro (litisconsortes com procuradores diferentes ou Fazenda Pública)",
                "default": False,
            },
        },
        "required": ["start_date", "days", "count_type"],
    }

    def __init__(self, today: Callable[[], date] = date.today) -> None:
        self._today = today

    async def execute(self, params: dict[str, Any]) -> dict:
        start = _parse_date(params.get("start_date"), "start_date")
        days = required_int(params, "days")
        if days < 0:
            raise ValueError("A quantidade de dias deve ser positiva")
        count_type = "corridos" if params.get("count_type") == "corridos" else "úteis"
        doubled = optional_bool(params.get("doubled")) or False

        deadline, holidays = calculate_deadline(start, days, count_type, doubled)
        days_remaining = (deadline - self._today()).days
        urgency = urgency_for(days_remaining)

        if days_remaining < 0:
            message = f"PRAZO VENCIDO há {abs(days_remaining)} dias!"
        else:
            message = f"Prazo vence em {days_remaining} dias ({deadline.strftime('%d/%m/%Y')})"

        return {
            "deadline_date": deadline.isoformat(),
            "start_date": start.isoformat(),
            "total_days": days * 2 if doubled else days,
            "count_type": count_type,
            "doubled": doubled,
            "holidays_in_period": [h.isoformat() for h in holidays],
            "days_remaining": days_remaining,
            "urgency": urgency,
            "is_expired": days_remaining < 0,
            "message": message,
        }


class CheckHolidaysTool(Tool):
    name = "check_holidays"
    description = "Verifica feriados nacionais no período informado."
    parameters = {
        "type": "object",
        "properties": {
            "start_date": {"type": "string", "description": "Data inicial (YYYY-MM-DD)"},
            "end_date": {"type": "string", "description": "Data final (YYYY-MM-DD)"},
        },
        "required": ["start_date", "end_date"],
    }

    async def execute(self, params: dict[str, Any]) -> dict:
        start = _parse_date(params.get("start_date"), "start_date")
        end = _parse_date(params.get("end_date"), "end_date")
        if end < start:
            raise ValueError("A data final deve ser posterior à data inicial")

        holidays = []
        for year in range(start.year, end.year + 1):
            for day, name in sorted(brazilian_holidays(year).items()):
                if start <= day <= end:
                    holidays.append(
                        {"date": day.isoformat(), "name": name, "weekday": _WEEKDAYS[day.weekday()]}
                    )
        business_days = sum(
            1
            for offset in range((end - start).days + 1)
            if is_business_day(start + timedelta(days=offset))
        )
        return {
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "total_holidays": len(holidays),
            "holidays": holidays,
            "business_days": business_days,
        }


class ListUrgenciesTool(Tool):
    name = "list_urgencies"
    description = "Lista tarefas abertas e prazos de movimentações de um processo que vencem em breve."
    parameters = {
        "type": "object",
        "properties": {
            "folder_id": {"type": "number", "description": "ID da pasta/processo"},
            "threshold_days": {
                "type": "number",
                "description": "Considerar urgente se faltar menos que X dias (padrão: 7)",
                "default": 7,
            },
        },
        "required": ["folder_id"],
    }

    def __init__(self, entities: EntityRepository, today: Callable[[], date] = date.today) -> None:
        self._entities = entities
        self._today = today

    async def execute(self, params: dict[str, Any]) -> dict:
        user_id = params["user_id"]
        folder_id = required_int(params, "folder_id")
        threshold = optional_int(params.get("threshold_days"))
        threshold = 7 if threshold is None else threshold

        if await self._entities.get_folder(user_id, folder_id) is None:
            return {"error": FOLDER_NOT_FOUND}

        tasks = await self._entities.list_tasks(user_id, folder_id=folder_id, limit=50)
        movements = await self._entities.list_movements(
            user_id, folder_id, is_deadline=True, limit=100,
        )

        today = self._today()
        urgencies = []
        for source, rows, date_key, label_key in (
            ("task", tasks, "due_date", "title"),
            ("movement", movements, "deadline_date", "description"),
        ):
            for row in rows:
                if row.get("status") in ("completed", "cancelled"):
                    continue
                raw_due = row.get(date_key) or row.get("due_date")
                if not raw_due:
                    continue
                due = _parse_date(raw_due, date_key)
                days_remaining = (due - today).days
                if days_remaining > threshold:
                    continue
                urgencies.append(
                    {
                        "source": source,
                        "id": row.get("id"),
                        "description": row.get(label_key) or row.get("description"),
                        "due_date": due.isoformat(),
                        "days_remaining": days_remaining,
                        "urgency": urgency_for(days_remaining),
                    }
                )

        urgencies.sort(key=lambda item: item["days_remaining"])
        return {
            "folder_id": folder_id,
            "threshold_days": threshold,
            "total": len(urgencies),
            "urgencies": urgencies,
        }


class TrackProcessTool(Tool):
    name = "track_process"
    description = "Consulta andamentos recentes do processo pelo número CNJ."
    parameters = {
        "type": "object",
        "properties": {
            "cnj_number": {
                "type": "string",
                "description": "Número CNJ do processo (NNNNNNN-DD.AAAA.J.TR.OOOO)",
            },
            "days": {"type": "number", "description": "Janela de andamentos em dias (padrão: 30)", "default": 30},
        },
        "required": ["cnj_number"],
    }

    def __init__(self, entities: EntityRepository) -> None:
        self._entities = entities

    async def execute(self, params: dict[str, Any]) -> dict:
        user_id = params["user_id"]
        cnj_number = str(params.get("cnj_number") or "").strip()
        if not CNJ_PATTERN.match(cnj_number):
            return {"error": "Número CNJ em formato inválido (esperado NNNNNNN-DD.AAAA.J.TR.OOOO)"}

        folders = await self._entities.list_folders(user_id, search=cnj_number, limit=1)
        if not folders:
            return {"error": FOLDER_NOT_FOUND}

        folder = folders[0]
        movements = await self._entities.list_movements(
            user_id,
            folder["id"],
            days=clamp_limit(params.get("days"), 30, 365),
            limit=20,
        )
        return {
            "cnj_number": cnj_number,
            "folder_id": folder["id"],
            "title": folder.get("title"),
            "total": len(movements),
            "movements": movements,
        }
