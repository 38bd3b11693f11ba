"""Required-parameter checks for write and execute tools."""

from typing import Any

# Required parameters per tool and action. Alternatives ("query OR table")
# are checked separately in validate_required_parameters.
REQUIRED_PARAMETERS: dict[str, dict[str, list[str]]] = {
    "write_connections": {
        "create": ["name", "providerName", "connectionString"],
        "update": ["name"],
        "delete": ["name"],
    },
    "write_jobs": {
        "create": ["jobName", "source", "destination"],
        "update": ["jobName"],
        "delete": ["jobName"],
    },
    "write_tasks": {
        "create": ["jobName"],
        "update": ["jobName", "taskId"],
        "delete": ["jobName", "taskId"],
    },
    "write_transformations": {
        "create": ["transformationName", "connection"],
        "update": ["transformationName"],
        "delete": ["transformationName"],
    },
    "write_users": {
        "create": ["user", "password", "roles"],
        "update": ["user"],
    },
    "execute_job": {
        "execute": [],
    },
    "execute_query": {
        "execute": ["queries"],
    },
    "configure_sync_server": {
        "update": [],
    },
}


def _missing(value: Any) -> bool:
    return value is None or value == ""


def should_validate(tool_name: str) -> bool:
    """Read tools carry no required-parameter rules."""
    return (
        tool_name.startswith("write_")
        or tool_name.startswith("execute_")
        or tool_name == "configure_sync_server"
    )


def validate_required_parameters(
    tool_name: str, action: str, params: dict[str, Any]
) -> tuple[bool, list[str]]:
    """Return (valid, missing) for one tool call."""
    tool_params = REQUIRED_PARAMETERS.get(tool_name)
    if tool_params is None:
        return True, []

    missing = []
    users = params.get("users")

    for param in tool_params.get(action, []):
        # a bulk users array replaces the single-user fields
        if tool_name == "write_users" and action == "create" and users:
            break
        if _missing(params.get(param)):
            missing.append(param)

    if tool_name == "write_tasks" and action == "create":
        if not params.get("query") and not params.get("table"):
            missing.append("query OR table")

    if tool_name in ("execute_job", "execute_query"):
        if not params.get("jobName") and not params.get("jobId"):
            missing.append("jobName OR jobId")

    if tool_name == "write_users" and action == "create":
        if not params.get("user") and not users:
            missing.append("user OR users array")
        if isinstance(users, list):
            for index, user in enumerate(users):
                for field in ("user", "password", "roles"):
                    if not isinstance(user, dict) or _missing(user.get(field)):
                        missing.append(f"users[{index}].{field}")

    if tool_name == "configure_sync_server" and action == "update":
        has_update = (
            params.get("baseUrl")
            or params.get("authToken")
            or (params.get("username") and params.get("password"))
            or params.get("clearAuth")
            or params.get("workspace")
        )
        if not has_update:
            missing.append("baseUrl, authToken, username/password, clearAuth, OR workspace")

    return not missing, missing
