from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .backfill import BookingRequest
from .booking import Actor, ActorRole, BookingStatus
from .clock import OrganizationClock
from .config import Settings
from .errors import BookingError
from .service import BookingService
from .slots import Modality, ServiceType
from .yaml_store import BookingYamlRepository

ERROR_STATUS_CODES = {
    "not_found": 404,
    "permission_denied": 403,
    "past_date_write": 403,
    "slot_full": 409,
    "slot_blocked": 409,
    "duplicate_booking": 409,
    "conflict": 409,
    "bag_number_required": 400,
}


def create_app(
    data_dir: str | Path | None = None,
    settings: Settings | None = None,
    now_provider: Callable[[], datetime] | None = None,
) -> Flask:
    settings = settings or Settings()
    if data_dir is not None:
        settings = replace(settings, data_dir=str(data_dir))

    app = Flask(__name__)
    clock = OrganizationClock(settings.timezone, now_provider=now_provider)
    service = BookingService(BookingYamlRepository(settings.data_dir), settings=settings, clock=clock)
    app.extensions["walkin_service"] = service

    def _actor() -> Actor:
        actor_id = str(request.headers.get("X-Actor-Id", "")).strip() or "anonymous"
        role = str(request.headers.get("X-Actor-Role", ActorRole.CHECKIN.value)).strip().lower()
        return Actor(actor_id=actor_id, role=ActorRole(role))

    def _date_arg(raw: Any) -> date:
        text = str(raw or "").strip()
        if not text:
            return service.today()
        return service.clock.calendar_date_of(text)

    @app.errorhandler(BookingError)
    def handle_booking_error(error: BookingError) -> Any:
        status = ERROR_STATUS_CODES.get(error.code, 400)
        return jsonify({"ok": False, "error": error.code, "message": str(error)}), status

    @app.errorhandler(ValueError)
    def handle_value_error(error: ValueError) -> Any:
        return jsonify({"ok": False, "error": "invalid_request", "message": str(error)}), 400

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type,X-Actor-Id,X-Actor-Role"
        return response

    @app.get("/api/slots")
    def get_slots() -> Any:
        target_date = _date_arg(request.args.get("date"))
        service_type = ServiceType(str(request.args.get("service", "")).lower())
        modality = Modality(str(request.args.get("modality", Modality.ONSITE.value)).lower())
        rows = service.get_available_slots(target_date, service_type, modality)
        return jsonify(
            {
                "ok": True,
                "date": target_date.isoformat(),
                "service": service_type.value,
                "modality": modality.value,
                "slots": [row.to_dict() for row in rows],
            }
        )

    @app.get("/api/bookings")
    def get_bookings() -> Any:
        target_date = _date_arg(request.args.get("date"))
        service_type = request.args.get("service")
        records = service.list_bookings(target_date, ServiceType(service_type) if service_type else None)
        return jsonify({"ok": True, "date": target_date.isoformat(), "bookings": [record.to_dict() for record in records]})

    @app.post("/api/bookings")
    def create_booking() -> Any:
        payload = request.get_json(silent=True) or {}
        guest_id = str(payload.get("guest_id", "")).strip()
        if not guest_id:
            return jsonify({"ok": False, "error": "invalid_request", "message": "guest_id is required."}), 400

        booking_request = BookingRequest(
            guest_id=guest_id,
            date=_date_arg(payload.get("date")),
            service_type=ServiceType(str(payload.get("service", "")).lower()),
            modality=Modality(str(payload.get("modality") or Modality.ONSITE.value).lower()),
            explicit_slot=(str(payload["slot"]).strip() or None) if payload.get("slot") else None,
            initial_status=BookingStatus(str(payload.get("status") or BookingStatus.BOOKED.value)),
            bag_number=(str(payload["bag_number"]).strip() or None) if payload.get("bag_number") else None,
        )
        result = service.book_slot(booking_request, _actor())
        return jsonify({"ok": True, **result.to_dict()})

    @app.post("/api/bookings/<booking_id>/status")
    def change_status(booking_id: str) -> Any:
        payload = request.get_json(silent=True) or {}
        new_status = str(payload.get("status", "")).strip()
        if not new_status:
            return jsonify({"ok": False, "error": "invalid_request", "message": "status is required."}), 400
        result = service.transition_booking(booking_id, new_status, _actor())
        return jsonify({"ok": True, **result.to_dict()})

    @app.post("/api/bookings/<booking_id>/rebook")
    def rebook(booking_id: str) -> Any:
        result = service.rebook(booking_id, _actor())
        return jsonify({"ok": True, **result.to_dict()})

    @app.post("/api/bookings/<booking_id>/bag")
    def set_bag(booking_id: str) -> Any:
        payload = request.get_json(silent=True) or {}
        updated = service.set_bag_number(booking_id, str(payload.get("bag_number", "")), _actor())
        return jsonify({"ok": True, "booking": updated.to_dict()})

    @app.get("/api/waitlist")
    def get_waitlist() -> Any:
        target_date = _date_arg(request.args.get("date"))
        service_type = request.args.get("service")
        entries = service.list_waitlist(target_date, ServiceType(service_type) if service_type else None)
        return jsonify({"ok": True, "date": target_date.isoformat(), "waitlist": [entry.to_dict() for entry in entries]})

    @app.post("/api/waitlist")
    def join_waitlist() -> Any:
        payload = request.get_json(silent=True) or {}
        guest_id = str(payload.get("guest_id", "")).strip()
        if not guest_id:
            return jsonify({"ok": False, "error": "invalid_request", "message": "guest_id is required."}), 400
        entry = service.join_waitlist(
            guest_id,
            _date_arg(payload.get("date")),
            ServiceType(str(payload.get("service", "")).lower()),
            _actor(),
        )
        return jsonify({"ok": True, "waitlist_entry": entry.to_dict()})

    @app.post("/api/waitlist/<entry_id>/promote")
    def promote(entry_id: str) -> Any:
        result = service.promote_waitlist_entry(entry_id, _actor())
        return jsonify({"ok": True, **result.to_dict()})

    @app.post("/api/waitlist/<entry_id>/delete")
    def leave_waitlist(entry_id: str) -> Any:
        removed = service.leave_waitlist(entry_id, _actor())
        return jsonify({"ok": True, "waitlist_entry": removed.to_dict()})

    @app.get("/api/blocks")
    def get_blocks() -> Any:
        target_date = _date_arg(request.args.get("date"))
        service_type = request.args.get("service")
        blocks = service.blocks.list_blocks(target_date, ServiceType(service_type) if service_type else None)
        return jsonify({"ok": True, "date": target_date.isoformat(), "blocks": [block.to_dict() for block in blocks]})

    @app.post("/api/blocks")
    def add_block() -> Any:
        payload = request.get_json(silent=True) or {}
        block = service.block_slot(
            _date_arg(payload.get("date")),
            ServiceType(str(payload.get("service", "")).lower()),
            str(payload.get("slot", "")),
            _actor(),
            reason=(str(payload["reason"]) if payload.get("reason") else None),
        )
        return jsonify({"ok": True, "block": block.to_dict()})

    @app.post("/api/blocks/delete")
    def delete_block() -> Any:
        payload = request.get_json(silent=True) or {}
        removed = service.unblock_slot(
            _date_arg(payload.get("date")),
            ServiceType(str(payload.get("service", "")).lower()),
            str(payload.get("slot", "")),
            _actor(),
        )
        if not removed:
            return jsonify({"ok": False, "error": "not_found", "message": "No block exists for that slot."}), 404
        return jsonify({"ok": True})

    @app.post("/api/service-day/end")
    def end_service_day() -> Any:
        payload = request.get_json(silent=True) or {}
        closed = service.end_service_day(
            _date_arg(payload.get("date")),
            ServiceType(str(payload.get("service", "")).lower()),
            _actor(),
        )
        return jsonify({"ok": True, "closed": [record.to_dict() for record in closed]})

    return app
