"""
Uniform JSON envelope for every API response.

    {"success": bool, "message": str, "data"?: ..., "errors"?: [...], "timestamp": iso}
"""
from datetime import datetime, timezone
from flask import jsonify


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def success_response(message, data=None, status_code=200):
    """
    Build a success envelope.
    Args:
        message (str): Human readable summary.
        data (Any): Optional payload, omitted from the body when None.
        status_code (int): HTTP status (200 or 201).
    Returns:
        tuple: (Response, status_code) for Flask.
    """
    body = {"success": True, "message": message, "timestamp": _timestamp()}
    if data is not None:
        body["data"] = data
    return jsonify(body), status_code


def error_response(message, errors=None, status_code=400):
    body = {"success": False, "message": message, "timestamp": _timestamp()}
    if errors is not None:
        body["errors"] = errors
    return jsonify(body), status_code
