"""Value coercion between MCP tool arguments and CData Sync payloads."""

import json
import re
from typing import Any
from urllib.parse import urlparse

# ID-like and numeric fields that can exceed 2**53 in CData Sync responses.
# Clients that parse JSON into doubles would lose precision, so 16+ digit
# values of these fields are decoded as strings.
_BIG_NUMBER_FIELD = re.compile(
    r'"(\w*[Ii]d|Count|Size|Affected|Days|Timeout|Interval|ExpirationDays|Keysize|'
    r'Runtime|Records|Rows|Total|Limit|Offset|Skip|Top|Index|Version|Port|Code|Status)"'
    r"\s*:\s*(\d{16,})"
)

ID_FIELDS = (
    "TaskId", "JobId", "UserId", "TransformationId", "Id", "HistoryId",
    "RequestId", "ConnectionId", "CertificateId", "LogId", "SessionId",
    "RunId", "ExecutionId", "InstanceId", "ParentId", "RootId",
    "taskId", "jobId", "userId", "transformationId", "id", "historyId",
)

USER_ROLES = ("cdata_admin", "cdata_standard", "cdata_job_creator", "cdata_support")

_ROLE_ALIASES = {
    "admin": "cdata_admin",
    "cdata_admin": "cdata_admin",
    "standard": "cdata_standard",
    "cdata_standard": "cdata_standard",
    "job_creator": "cdata_job_creator",
    "job creator": "cdata_job_creator",
    "cdata_job_creator": "cdata_job_creator",
    "support": "cdata_support",
    "cdata_support": "cdata_support",
    "job_operator": "cdata_support",
    "job operator": "cdata_support",
}


def to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    if isinstance(value, (int, float)):
        return value != 0
    return bool(value)


def to_boolean_string(value: Any) -> str:
    """CData Sync expects booleans as the strings 'true' / 'false'."""
    return "true" if to_boolean(value) else "false"


def to_id_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    raise ValueError(f"Cannot convert {value!r} to ID string")


def to_user_role(value: Any) -> str:
    role = str(value).strip().lower()
    if role in _ROLE_ALIASES:
        return _ROLE_ALIASES[role]
    raise ValueError(f"Invalid user role: {value}")


def numbered_fields(prefix: str, values: list[str]) -> dict[str, str]:
    """Expand a list into the API's numbered form: Query#1, Query#2, ..."""
    return {f"{prefix}#{index}": value for index, value in enumerate(values, start=1)}


def extract_array(response: Any) -> list[Any]:
    """Unwrap an OData envelope ({"value": [...]}) or a bare record into a list."""
    if isinstance(response, list):
        return response
    if isinstance(response, dict) and isinstance(response.get("value"), list):
        return response["value"]
    return [response]


def extract_count(response: Any) -> int:
    if isinstance(response, bool):
        raise ValueError("Unable to extract count from response")
    if isinstance(response, int):
        return response
    if isinstance(response, str):
        try:
            return int(response.strip())
        except ValueError:
            pass
    if isinstance(response, dict) and "@odata.count" in response:
        return int(response["@odata.count"])
    raise ValueError("Unable to extract count from response")


def parse_json_preserving_ids(text: str) -> Any:
    """Decode a JSON body, turning oversized ID-like numbers into strings."""
    return json.loads(_BIG_NUMBER_FIELD.sub(r'"\1":"\2"', text))


def stringify_ids(body: dict[str, Any]) -> dict[str, Any]:
    transformed = dict(body)
    for field_name in ID_FIELDS:
        value = transformed.get(field_name)
        if value is not None and not isinstance(value, str):
            transformed[field_name] = str(value)
    return transformed


def is_valid_url(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
