# Overview: Unauthenticated read-only lookups behind asset QR labels.

from flask import Blueprint

from ..responses import ok
from ..services import public_service

public_bp = Blueprint("public", __name__, url_prefix="/api/public")


@public_bp.get("/assignment/<int:assignment_id>")
def assignment_card_route(assignment_id: int):
    """
    Returns:
        200: {assignment, employee, assignedBy, inventory, product}
        404: Assignment missing or deleted
    """
    return ok(public_service.assignment_card(assignment_id))


@public_bp.get("/inventory/<int:unit_id>")
def unit_card_route(unit_id: int):
    """
    Returns:
        200: {inventory, product, currentAssignment}
        404: Inventory item missing or deleted
    """
    return ok(public_service.unit_card(unit_id))
