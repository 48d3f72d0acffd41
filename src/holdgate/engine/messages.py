"""Notification texts and deep links."""

from typing import Optional
from uuid import UUID

from holdgate.models import Actor, Claim, Client, Unit


def claim_link(claim_id: UUID, from_notification: bool = False) -> str:
    suffix = "?from=notification" if from_notification else ""
    return f"/claims/{claim_id}{suffix}"


def unit_link(unit_id: UUID, from_notification: bool = False) -> str:
    suffix = "?from=notification" if from_notification else ""
    return f"/units/{unit_id}{suffix}"


def _unit_context(unit: Unit, client: Optional[Client]) -> list[str]:
    """Job context lines shared by designer and fitter assignments."""
    heading = f"Unit: {unit.code} | {unit.city or ''} {unit.area or ''}".strip()
    lines = [
        heading,
        f"Location: {unit.location_label} | Side: {unit.side or 'N/A'} | Size: {unit.size_label}",
    ]
    if client is not None:
        lines.append(f"Client: {client.name} | {client.phone} | {client.email or ''}".rstrip(" |"))
    else:
        lines.append("Client: N/A")
    return lines


def queue_position(unit: Unit, position: int) -> tuple[str, str]:
    return "Claim created", f"You are #{position} in queue for {unit.code}."


def agent_claimed(
    unit: Unit, agent: Actor, client: Client, duration_months: int, position: int
) -> tuple[str, str]:
    return (
        "Unit claimed",
        f"{unit.code} claimed by {agent.name} for Client: {client.name} "
        f"({duration_months} months). Queue #{position}.",
    )


def claim_cancelled() -> tuple[str, str]:
    return "Claim cancelled", "Your claim was cancelled by management."


def claim_expired() -> tuple[str, str]:
    return "Claim expired", "Your claim expired."


def claim_promoted() -> tuple[str, str]:
    return "Claim promoted", "You are now first in queue. Please confirm before expiry."


def claim_confirmed() -> tuple[str, str]:
    return "Claim confirmed", "Your claim was confirmed. Unit moved to In Process."


def rival_cancelled() -> tuple[str, str]:
    return "Claim cancelled", "Another user confirmed booking. Your claim was cancelled."


def design_assigned(unit: Unit, client: Optional[Client], claim: Claim) -> tuple[str, str]:
    lines = _unit_context(unit, client)
    lines.append(
        f"Claim: {claim.duration_months} months | Start: {claim.date_from.isoformat()}"
    )
    return "New design assigned", "\n".join(lines)


def manager_confirmed(manager: Actor, unit: Unit) -> tuple[str, str]:
    return (
        "Unit In Process",
        f"{manager.name} marked {unit.code} as In Process (via claim confirmation).",
    )


def design_completed(designer: Actor, unit: Unit) -> tuple[str, str]:
    return "Design completed", f"{designer.name} marked design completed for {unit.code}."


def installation_assigned(
    unit: Unit,
    client: Optional[Client],
    designer: Optional[Actor],
    fitter: Actor,
) -> tuple[str, str]:
    lines = _unit_context(unit, client)
    lines.append(f"Design: Completed (by {designer.name})" if designer else "Design: Completed")
    lines.append(f"Assigned to: {fitter.name}")
    return "New installation assigned", "\n".join(lines)


def unit_live(unit: Unit) -> tuple[str, str]:
    return "Unit is Live", f"{unit.code} is now Live. Mark as Booked when ready."


def assign_fitter_key(unit_id: UUID, fitter_id: UUID) -> str:
    return f"assign-fitter:{unit_id}:{fitter_id}"


def ready_to_book_key(unit_id: UUID, claim_id: UUID) -> str:
    return f"ready-to-book:{unit_id}:{claim_id}"
