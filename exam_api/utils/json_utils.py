"""JSON serialization utilities."""
import json


def json_dump(payload: object) -> str:
    """Serialize object to compact JSON string with stable key order."""
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def json_load(data: str) -> object:
    """Deserialize JSON string to object."""
    return json.loads(data)


def maybe_json(value: object) -> object:
    """Decode value if it is a JSON document stored as text, else return it."""
    if not isinstance(value, str):
        return value
    raw = value.strip()
    if not raw or raw[0] not in "[{":
        return value
    try:
        return json_load(raw)
    except (json.JSONDecodeError, TypeError):
        return value
