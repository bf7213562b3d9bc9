"""
Running Coach Tools

Functions the coach model may call mid-stream. Each tool is a ToolSpec:
its JSON-schema declaration (sent upstream), a handler that touches the
database, and a `notify` hook that turns the result into the flags the
chat client shows ("perfil guardado", "evento creado", ...).

The registry is built per request around its own DB session, which the
relay closes when the stream ends; nothing here is module-global state.

Every tool returns a JSON-serialisable dict:
  {
    "success": bool,
    "message": "<human readable, Spanish>",
    ...tool specific payload
  }
Handlers may raise; `ToolRegistry.dispatch` converts any exception into a
failure result so a broken tool never aborts the chat stream.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from functools import partial
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from services import running_events
from services.runner_profile import apply_profile_update

logger = logging.getLogger(__name__)

ToolResult = Dict[str, Any]

EVENTS_WINDOW_DAYS = 30
EVENTS_DEFAULT_LIMIT = 20
EVENTS_MAX_LIMIT = 100


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: Callable[[Dict[str, Any]], ToolResult]
    notify: Optional[Callable[[Dict[str, Any], ToolResult], Dict[str, Any]]] = None
    error_message: str = "Error al ejecutar la herramienta"

    def declaration(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolRegistry:
    """Explicit name -> ToolSpec mapping consumed by the chat relay."""

    def __init__(self, tools: List[ToolSpec], db: Optional[Session] = None):
        self._tools: Dict[str, ToolSpec] = {tool.name: tool for tool in tools}
        self._db = db

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def declarations(self) -> List[Dict[str, Any]]:
        return [tool.declaration() for tool in self._tools.values()]

    def dispatch(self, name: str, args: Dict[str, Any]) -> ToolResult:
        """Run a tool. Never raises."""
        tool = self._tools.get(name)
        if tool is None:
            logger.warning(f"Model requested unknown tool: {name!r}")
            return {"success": False, "message": f"Herramienta desconocida: {name}"}

        try:
            result = tool.handler(args)
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}", exc_info=True)
            if self._db is not None:
                self._db.rollback()
            return {"success": False, "message": tool.error_message}

        logger.info(f"Tool {name} executed: success={result.get('success')}")
        return result

    def close(self) -> None:
        """Return the session's connection to the pool. Safe to call more than once."""
        if self._db is not None:
            self._db.close()

    def notification(self, name: str, args: Dict[str, Any], result: ToolResult) -> Dict[str, Any]:
        """Client-facing event announcing the tool run."""
        event: Dict[str, Any] = {"toolExecuted": name}
        tool = self._tools.get(name)
        if tool is not None and tool.notify is not None:
            event.update(tool.notify(args, result))
        return event


# ---------------------------------------------------------------------------
# save_runner_profile
# ---------------------------------------------------------------------------

SAVE_RUNNER_PROFILE_PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Nombre del corredor"},
        "age": {"type": "number", "description": "Edad en años"},
        "weight": {"type": "number", "description": "Peso en kg"},
        "height": {"type": "number", "description": "Altura en cm"},
        "yearsRunning": {"type": "number", "description": "Años de experiencia corriendo"},
        "weeklyKm": {"type": "number", "description": "Kilómetros semanales habituales"},
        "pb5k": {"type": "string", "description": "Marca personal 5K (formato MM:SS)"},
        "pb10k": {"type": "string", "description": "Marca personal 10K"},
        "pbHalfMarathon": {"type": "string", "description": "Marca personal media maratón"},
        "pbMarathon": {"type": "string", "description": "Marca personal maratón"},
        "currentGoal": {"type": "string", "description": "Objetivo actual del corredor"},
        "targetRace": {"type": "string", "description": "Carrera objetivo"},
        "targetTime": {"type": "string", "description": "Tiempo objetivo para la carrera"},
        "injuries": {"type": "string", "description": "Lesiones pasadas o actuales"},
        "healthNotes": {"type": "string", "description": "Notas de salud relevantes"},
        "preferredTerrain": {"type": "string", "description": "Terreno preferido (asfalto, trail, mixto)"},
        "availableDays": {"type": "string", "description": "Días disponibles para entrenar"},
        "maxTimePerSession": {"type": "number", "description": "Tiempo máximo por sesión en minutos"},
        "coachNotes": {"type": "string", "description": "Notas importantes sobre el corredor"},
        "additionalInfo": {
            "type": "object",
            "description": "Información adicional que no encaja en otros campos (zapatillas, equipamiento, rutinas, etc.)",
            "additionalProperties": True,
        },
    },
    "required": [],
}


def save_runner_profile(db: Session, args: Dict[str, Any]) -> ToolResult:
    profile, saved_fields = apply_profile_update(db, args)
    if profile is None:
        return {"success": True, "message": "No hay datos para actualizar", "savedFields": []}
    return {
        "success": True,
        "message": "Perfil actualizado correctamente",
        "savedFields": saved_fields,
    }


def _notify_profile_saved(args: Dict[str, Any], result: ToolResult) -> Dict[str, Any]:
    return {
        "profileSaved": bool(result.get("success")),
        "savedFields": result.get("savedFields", []),
    }


# ---------------------------------------------------------------------------
# get_running_events
# ---------------------------------------------------------------------------

GET_RUNNING_EVENTS_PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "startDate": {"type": "string", "description": "Fecha inicial (YYYY-MM-DD). Por defecto, hace 30 días"},
        "endDate": {"type": "string", "description": "Fecha final (YYYY-MM-DD). Por defecto, dentro de 30 días"},
        "category": {
            "type": "string",
            "enum": ["running", "personal", "all"],
            "description": "Tipo de eventos: running, personal o all (por defecto)",
        },
        "limit": {"type": "number", "description": "Número máximo de eventos, entre 1 y 100 (por defecto 20)"},
    },
    "required": [],
}


def _parse_date(value: Any, default: date) -> date:
    if value in (None, ""):
        return default
    return date.fromisoformat(str(value)[:10])


def _coerce_limit(value: Any) -> int:
    try:
        limit = int(value)
    except (TypeError, ValueError):
        return EVENTS_DEFAULT_LIMIT
    return max(1, min(limit, EVENTS_MAX_LIMIT))


def get_running_events(db: Session, args: Dict[str, Any], today: Optional[date] = None) -> ToolResult:
    today = today or date.today()
    try:
        start = _parse_date(args.get("startDate"), today - timedelta(days=EVENTS_WINDOW_DAYS))
        end = _parse_date(args.get("endDate"), today + timedelta(days=EVENTS_WINDOW_DAYS))
    except ValueError:
        return {"success": False, "message": "Fecha inválida, usa el formato YYYY-MM-DD"}

    category = args.get("category") or "all"
    limit = _coerce_limit(args.get("limit", EVENTS_DEFAULT_LIMIT))

    rows = running_events.query_events(db, start, end, limit)
    # Category filter runs after the limit, so fewer than `limit` rows may come back.
    if category != "all":
        rows = [row for row in rows if row.category == category]

    events = [running_events.event_to_dict(row) for row in rows]
    return {
        "success": True,
        "message": f"{len(events)} eventos encontrados",
        "events": events,
        "count": len(events),
        "range": {"startDate": start.isoformat(), "endDate": end.isoformat()},
    }


def _notify_events_found(args: Dict[str, Any], result: ToolResult) -> Dict[str, Any]:
    return {"eventsFound": result.get("count", 0)}


# ---------------------------------------------------------------------------
# create_running_event
# ---------------------------------------------------------------------------

CREATE_RUNNING_EVENT_PARAMETERS: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "date": {"type": "string", "description": "Fecha del evento (YYYY-MM-DD)"},
        "category": {
            "type": "string",
            "enum": ["running", "personal"],
            "description": "running para entrenamientos y carreras, personal para otros compromisos",
        },
        "type": {
            "type": "string",
            "description": "Tipo de evento (race, training, long_run, intervals, recovery, appointment...)",
        },
        "title": {"type": "string", "description": "Título del evento"},
        "time": {"type": "string", "description": "Hora (HH:MM)"},
        "distance": {"type": "number", "description": "Distancia en km"},
        "duration": {"type": "string", "description": "Duración prevista"},
        "pace": {"type": "string", "description": "Ritmo objetivo (min/km)"},
        "notes": {"type": "string", "description": "Notas adicionales"},
    },
    "required": ["date", "type"],
}


def _optional_float(value: Any) -> Optional[float]:
    try:
        return float(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def create_running_event(db: Session, args: Dict[str, Any]) -> ToolResult:
    missing = [key for key in ("date", "type") if not args.get(key)]
    if missing:
        return {"success": False, "message": f"Faltan campos obligatorios: {', '.join(missing)}"}

    try:
        event_date = date.fromisoformat(str(args["date"])[:10])
    except ValueError:
        return {"success": False, "message": "Fecha inválida, usa el formato YYYY-MM-DD"}

    event = running_events.create_event(
        db,
        {
            "date": event_date,
            "type": str(args["type"]),
            "category": args.get("category"),
            "title": args.get("title"),
            "time": args.get("time"),
            "distance": _optional_float(args.get("distance")),
            "duration": args.get("duration"),
            "pace": args.get("pace"),
            "notes": args.get("notes"),
            "completed": 0,
        },
    )
    return {
        "success": True,
        "message": "Evento creado correctamente",
        "event": {
            "id": str(event.id),
            "date": event.date.isoformat(),
            "type": event.type,
            "title": event.title,
            "category": event.category,
        },
    }


def _notify_event_created(args: Dict[str, Any], result: ToolResult) -> Dict[str, Any]:
    return {"eventCreated": bool(result.get("success"))}


def build_running_coach_tools(db: Session) -> ToolRegistry:
    return ToolRegistry(
        [
            ToolSpec(
                name="save_runner_profile",
                description=(
                    "Guarda o actualiza información del perfil del corredor. Usa este tool cuando el usuario "
                    "comparta datos personales, marcas, objetivos, lesiones, o cualquier información relevante "
                    "sobre su perfil como corredor."
                ),
                parameters=SAVE_RUNNER_PROFILE_PARAMETERS,
                handler=partial(save_runner_profile, db),
                notify=_notify_profile_saved,
                error_message="Error al guardar el perfil",
            ),
            ToolSpec(
                name="get_running_events",
                description=(
                    "Consulta el calendario del corredor: entrenamientos, carreras y eventos personales en un "
                    "rango de fechas. Úsalo antes de planificar o cuando el usuario pregunte por su agenda."
                ),
                parameters=GET_RUNNING_EVENTS_PARAMETERS,
                handler=partial(get_running_events, db),
                notify=_notify_events_found,
                error_message="Error al consultar los eventos",
            ),
            ToolSpec(
                name="create_running_event",
                description=(
                    "Crea un evento en el calendario del corredor (entrenamiento, carrera o compromiso personal). "
                    "Úsalo cuando el usuario pida apuntar algo o acepte un entrenamiento propuesto."
                ),
                parameters=CREATE_RUNNING_EVENT_PARAMETERS,
                handler=partial(create_running_event, db),
                notify=_notify_event_created,
                error_message="Error al crear el evento",
            ),
        ],
        db=db,
    )
