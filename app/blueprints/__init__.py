"""
OTI Tracker
Blueprint helpers shared by the REST endpoints.
"""

from flask import abort, request


def json_body() -> dict:
    """Return the JSON object body; an empty body is ``{}``.

    Aborts with 400 when a body is present but is not a JSON object.
    """
    if not request.get_data(cache=True):
        return {}
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")
    return data


def flag(name: str) -> bool:
    """Truthy query-string flag: ?include_archived=1 / true / yes."""
    return request.args.get(name, "").lower() in ("1", "true", "yes")


def paginate_items(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an in-memory list.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_page, total_count)
    """
    total = len(items)
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + limit], total
