# Overview: Response envelope and request-body helpers for the route layer.

from __future__ import annotations

from flask import current_app, jsonify, request

from .errors import ValidationError
from .validation import PageRequest, parse_page_request


def ok(data=None, *, message: str | None = None, pagination: dict | None = None, status: int = 200):
    """{"success": true, "data"?, "message"?, "pagination"?}"""
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination
    return jsonify(body), status


def fail(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


def json_body() -> dict:
    """Request JSON object; an absent body is {}, anything but an object is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def page_request() -> PageRequest:
    return parse_page_request(
        request.args,
        default_limit=current_app.config.get("DEFAULT_PAGE_SIZE", 10),
        max_limit=current_app.config.get("MAX_PAGE_SIZE", 100),
    )
