from __future__ import annotations

import logging
from datetime import date
from typing import Any

from mcp.server.fastmcp import FastMCP

from walkin_services import (
    Actor,
    ActorRole,
    BookingError,
    BookingRequest,
    BookingService,
    Modality,
    ServiceType,
    generate_slots,
    load_settings,
)

mcp = FastMCP(
    "Walk-in Services MCP Server",
    instructions="Expose shower and laundry slot availability and booking operations.",
    json_response=True,
)

SETTINGS = load_settings()
SERVICE = BookingService.from_settings(SETTINGS)
MCP_ACTOR = Actor(actor_id="mcp", role=ActorRole.STAFF)


def _resolve_date(date_iso: str | None) -> date:
    return SERVICE.clock.calendar_date_of(date_iso) if date_iso else SERVICE.today()


def _error_payload(error: BookingError) -> dict[str, Any]:
    return {"ok": False, "error": error.code, "message": str(error)}


@mcp.resource("walkin://services")
async def list_services() -> list[str]:
    """List bookable service types."""
    return [service_type.value for service_type in ServiceType]


@mcp.tool()
def list_slot_catalog(service: str, date_iso: str | None = None) -> list[dict[str, Any]]:
    """Return the slot catalog of a service for a day (today by default)."""
    return [slot.to_dict() for slot in generate_slots(ServiceType(service), _resolve_date(date_iso))]


@mcp.tool()
def get_available_slots(service: str, date_iso: str | None = None, modality: str = "onsite") -> list[dict[str, Any]]:
    """Return occupancy, capacity and block state for every slot of the day."""
    rows = SERVICE.get_available_slots(_resolve_date(date_iso), ServiceType(service), Modality(modality))
    return [row.to_dict() for row in rows]


@mcp.tool()
def book_service(
    guest_id: str,
    service: str,
    slot: str | None = None,
    modality: str = "onsite",
    date_iso: str | None = None,
) -> dict[str, Any]:
    """Book a slot for a guest; without a slot the earliest open one is used or the guest is waitlisted."""
    request = BookingRequest(
        guest_id=guest_id,
        date=_resolve_date(date_iso),
        service_type=ServiceType(service),
        modality=Modality(modality),
        explicit_slot=slot,
    )
    try:
        result = SERVICE.book_slot(request, MCP_ACTOR)
    except BookingError as error:
        return _error_payload(error)
    return {"ok": True, **result.to_dict()}


@mcp.tool()
def transition_booking(booking_id: str, status: str) -> dict[str, Any]:
    """Move a booking to a new status.

    Laundry also moves through washer, dryer and picked_up onsite, or
    transported, returned and offsite_picked_up offsite. Moving back to booked
    reports ``outcome`` waitlisted when no slot is open.
    """
    try:
        result = SERVICE.transition_booking(booking_id, status, MCP_ACTOR)
    except BookingError as error:
        return _error_payload(error)
    return {"ok": True, **result.to_dict()}


@mcp.tool()
def rebook_booking(booking_id: str) -> dict[str, Any]:
    """Put a cancelled or no-show booking back into its slot, or the earliest open one."""
    try:
        result = SERVICE.rebook(booking_id, MCP_ACTOR)
    except BookingError as error:
        return _error_payload(error)
    return {"ok": True, **result.to_dict()}


@mcp.tool()
def join_waitlist(guest_id: str, service: str) -> dict[str, Any]:
    try:
        entry = SERVICE.join_waitlist(guest_id, SERVICE.today(), ServiceType(service), MCP_ACTOR)
    except BookingError as error:
        return _error_payload(error)
    return {"ok": True, "waitlist_entry": entry.to_dict()}


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )
    mcp.run()


if __name__ == "__main__":
    main()
