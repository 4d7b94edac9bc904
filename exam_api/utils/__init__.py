"""Utility modules."""
from exam_api.utils.json_utils import json_dump, json_load, maybe_json
from exam_api.utils.time_utils import format_time, parse_iso_timestamp, parse_schedule, utc_now
from exam_api.utils.validation import validate_id

__all__ = [
    "json_dump",
    "json_load",
    "maybe_json",
    "format_time",
    "parse_iso_timestamp",
    "parse_schedule",
    "utc_now",
    "validate_id",
]
