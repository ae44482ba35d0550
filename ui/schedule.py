"""Schedule web application for the clinic scheduling engine.

This module exposes a small Flask application with JSON endpoints for
booking, rescheduling, cancelling and status changes, plus a read-only
day grid. The grid only consumes :mod:`scheduling.layout`; it never
decides anything about conflicts or statuses.
"""
from __future__ import annotations

from datetime import date, datetime, timezone
import logging
import os
from typing import Dict, List, MutableMapping, Optional, Tuple

from flask import Flask, Response, jsonify, render_template_string, request

from scheduling import (
    AppointmentNotFoundError,
    AppointmentStatus,
    BookingRequest,
    ConflictError,
    InvalidTransitionError,
    RecurrenceError,
    ResourceCategory,
    ResourceNotFoundError,
    SchedulingService,
    ValidationError,
    hour_cells,
    layout_day,
)
from scheduling.models import coerce_date, coerce_datetime

DATE_FORMAT = "%Y-%m-%d"

logger = logging.getLogger(__name__)


def parse_iso_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        return None


def _error(status: int, message: str, **extra: object) -> Tuple[Response, int]:
    payload: Dict[str, object] = {"error": message}
    payload.update(extra)
    return jsonify(payload), status


def _json_body() -> MutableMapping[str, object]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload


def build_grid_context(service: SchedulingService, target_date: date) -> MutableMapping[str, object]:
    """Provider columns with per-hour placements for ``target_date``."""

    settings = service.settings
    cells = hour_cells(target_date, settings.grid_first_hour, settings.grid_last_hour, tzinfo=timezone.utc)
    day_start, day_end = cells[0][0], cells[-1][1]

    if service.registry is not None:
        providers = service.registry.by_category(ResourceCategory.PROVIDER)
        columns = [(provider.id, provider.name, provider.color) for provider in providers]
    else:
        columns = []

    grid: List[Dict[str, object]] = []
    for resource_id, name, color in columns:
        slots: Dict[str, List[Dict[str, object]]] = {cell_start.strftime("%H:%M"): [] for cell_start, _ in cells}
        for appointment in service.query_by_resource_and_range(resource_id, day_start, day_end):
            for cell_start, placement in layout_day(appointment, cells):
                slots[cell_start.strftime("%H:%M")].append(
                    {
                        "appointment_id": appointment.id,
                        "patient_id": appointment.patient_id,
                        "type_id": appointment.type_id,
                        "status": appointment.status.value,
                        "top": round(placement.top_fraction * 100, 2),
                        "height": round(placement.height_fraction * 100, 2),
                    }
                )
        grid.append({"resource_id": resource_id, "name": name, "color": color or "#4338ca", "slots": slots})

    return {
        "date": target_date.strftime(DATE_FORMAT),
        "hours": [cell_start.strftime("%H:%M") for cell_start, _ in cells],
        "columns": grid,
    }


schedule_template = """
<!doctype html>
<html lang=\"en\">
  <head>
    <meta charset=\"utf-8\">
    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">
    <meta http-equiv=\"refresh\" content=\"60\">
    <title>Clinic Schedule</title>
    <link
      href=\"https://cdn.jsdelivr.net/npm/bootstrap@5.3.3/dist/css/bootstrap.min.css\"
      rel=\"stylesheet\"
      integrity=\"sha384-QWTKZyjpPEjISv5WaRU9OFeRpok6YctnYmDr5pNlyT2bRjXh0JMhjY6hW+ALEwIH\"
      crossorigin=\"anonymous\"
    >
    <style>
      .cell { position: relative; height: 6rem; }
      .block { position: absolute; left: .5rem; right: .5rem; color: #fff; font-size: .75rem; overflow: hidden; border-radius: .25rem; padding: .25rem; }
    </style>
  </head>
  <body class=\"bg-light\">
    <nav class=\"navbar navbar-dark bg-primary\">
      <div class=\"container-fluid\">
        <a class=\"navbar-brand\" href=\"#\">Clinic Schedule</a>
        <form class=\"d-flex\" method=\"get\" action=\"/schedule\" aria-label=\"Schedule date\">
          <input name=\"date\" type=\"date\" class=\"form-control me-2\" value=\"{{ date }}\">
          <button type=\"submit\" class=\"btn btn-light\">Show</button>
        </form>
      </div>
    </nav>
    <main class=\"container-fluid my-4\">
      {% if columns %}
        <table class=\"table table-bordered bg-white\">
          <thead>
            <tr>
              <th scope=\"col\" style=\"width: 5rem\">Time</th>
              {% for column in columns %}<th scope=\"col\">{{ column.name }}</th>{% endfor %}
            </tr>
          </thead>
          <tbody>
            {% for hour in hours %}
              <tr>
                <td>{{ hour }}</td>
                {% for column in columns %}
                  <td class=\"cell p-0\">
                    {% for block in column.slots[hour] %}
                      <div class=\"block\" data-status=\"{{ block.status }}\"
                           style=\"top: {{ block.top }}%; height: {{ block.height }}%; background-color: {{ column.color }}\">
                        {{ block.patient_id }} &middot; {{ block.type_id }}
                      </div>
                    {% endfor %}
                  </td>
                {% endfor %}
              </tr>
            {% endfor %}
          </tbody>
        </table>
      {% else %}
        <p class=\"text-muted\">No providers registered.</p>
      {% endif %}
    </main>
  </body>
</html>
"""


def create_app(service: Optional[SchedulingService] = None) -> Flask:
    if service is None:
        from agents.appointments import SERVICE

        service = SERVICE

    app = Flask(__name__)
    app.config["SCHEDULING_SERVICE"] = service

    @app.errorhandler(ValidationError)
    def handle_validation(exc: ValidationError):
        return _error(400, str(exc))

    @app.errorhandler(AppointmentNotFoundError)
    @app.errorhandler(ResourceNotFoundError)
    def handle_not_found(exc: LookupError):
        return _error(404, str(exc))

    @app.errorhandler(ConflictError)
    def handle_conflict(exc: ConflictError):
        logger.info("Request %s rejected with %d conflict(s)", request.path, len(exc.conflicts))
        return _error(409, str(exc), conflicts=[appointment.to_dict() for appointment in exc.conflicts])

    @app.errorhandler(InvalidTransitionError)
    def handle_transition(exc: InvalidTransitionError):
        return _error(422, str(exc), current=exc.current.value, requested=exc.requested.value)

    @app.errorhandler(RecurrenceError)
    def handle_recurrence(exc: RecurrenceError):
        return _error(422, str(exc))

    @app.route("/appointments", methods=["POST"])
    def book() -> Tuple[Response, int]:
        booking = BookingRequest.from_mapping(_json_body())
        appointment = service.book_appointment(booking)
        return jsonify(appointment.to_dict()), 201

    @app.route("/appointments/recurring", methods=["POST"])
    def book_recurring() -> Tuple[Response, int]:
        payload = _json_body()
        booking = BookingRequest.from_mapping(payload)
        horizon_raw = payload.get("horizon")
        horizon = coerce_date(horizon_raw, "horizon") if horizon_raw is not None else None
        result = service.book_recurring(booking, horizon)
        return jsonify(result.to_dict()), 201

    @app.route("/appointments/<appointment_id>", methods=["GET"])
    def show(appointment_id: str) -> Response:
        return jsonify(service.get_appointment(appointment_id).to_dict())

    @app.route("/appointments/<appointment_id>/reschedule", methods=["POST"])
    def reschedule(appointment_id: str) -> Response:
        payload = _json_body()
        appointment = service.reschedule_appointment(
            appointment_id,
            coerce_datetime(payload.get("start_time"), "start_time"),
            coerce_datetime(payload.get("end_time"), "end_time"),
            payload.get("resource_ids"),
        )
        return jsonify(appointment.to_dict())

    @app.route("/appointments/<appointment_id>/cancel", methods=["POST"])
    def cancel(appointment_id: str) -> Response:
        return jsonify(service.cancel_appointment(appointment_id).to_dict())

    @app.route("/appointments/<appointment_id>/status", methods=["POST"])
    def change_status(appointment_id: str) -> Response:
        target = AppointmentStatus.parse(_json_body().get("status"))
        return jsonify(service.transition_status(appointment_id, target).to_dict())

    @app.route("/resources/<resource_id>/appointments", methods=["GET"])
    def resource_appointments(resource_id: str) -> Response:
        start = coerce_datetime(request.args.get("start"), "start")
        end = coerce_datetime(request.args.get("end"), "end")
        include_cancelled = request.args.get("include_cancelled", "").lower() in {"1", "true", "yes"}
        appointments = service.query_by_resource_and_range(
            resource_id, start, end, include_cancelled=include_cancelled
        )
        return jsonify([appointment.to_dict() for appointment in appointments])

    @app.route("/schedule.json", methods=["GET"])
    def schedule_json() -> Response:
        target_date = parse_iso_date(request.args.get("date")) or date.today()
        return jsonify(build_grid_context(service, target_date))

    @app.route("/schedule", methods=["GET"])
    def schedule() -> str:
        target_date = parse_iso_date(request.args.get("date")) or date.today()
        return render_template_string(schedule_template, **build_grid_context(service, target_date))

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    create_app().run(
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "5000")),
        debug=False,
    )
