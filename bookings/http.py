import json


def json_body(request):
    """Decoded JSON object body, or None when the body is not a JSON object."""
    try:
        data = json.loads(request.body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return data if isinstance(data, dict) else None
