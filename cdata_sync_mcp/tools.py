"""MCP tool descriptors for the CData Sync server."""

from mcp.types import Tool

NAME_PATTERN = r"^[a-zA-Z0-9_][a-zA-Z0-9_\-\.]{0,49}$"
USERNAME_PATTERN = r"^[a-zA-Z0-9_][a-zA-Z0-9_\-\.@]{0,49}$"
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
CRON_PATTERN = (
    r"^([0-5]?\d|\*)\s+([01]?\d|2[0-3]|\*)\s+([0-2]?\d|3[01]|\*)\s+([0]?\d|1[0-2]|\*)\s+([0-6]|\*)$"
)
EMAIL_LIST_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+(\s*,\s*[^\s@]+@[^\s@]+\.[^\s@]+)*$"
BASE64_PATTERN = r"^[A-Za-z0-9+/]+=*$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"

VERBOSITY = {
    "type": "string",
    "enum": ["1", "2", "3", "4"],
    "description": "Log level: 1=Error, 2=Info, 3=Transfer, 4=Verbose",
}

# Tool definitions organized by resource
# Each tool has: description, actions (optional), default_action (optional),
# params, required (optional), overrides (optional, replace a shared param definition)
TOOLS = {
    # ============================================================================
    # CONFIGURATION
    # ============================================================================
    "configure_sync_server": {
        "description": (
            "Configure the MCP server's connection to CData Sync. Use 'get' to view the current "
            "configuration (auth type, workspace, connection status) or 'update' to change it. "
            "⚠️ Changes take effect immediately and reconnect all services. Passwords and tokens "
            "are never returned."
        ),
        "actions": ["get", "update"],
        "default_action": "get",
        "params": ["baseUrl", "authToken", "username", "password", "clearAuth", "workspace"],
        "required": ["action"],
        "workspace_scoped": False,
    },

    # ============================================================================
    # CONNECTIONS
    # ============================================================================
    "read_connections": {
        "description": (
            "Access data source/destination connections. Use 'list' to see all connections, "
            "'count' for the total, 'get' for one connection, 'test' to verify credentials and "
            "connectivity, or 'property' to read a single property value. Connections must be "
            "created and tested before being used in jobs."
        ),
        "actions": ["list", "count", "get", "test", "property"],
        "default_action": "list",
        "params": ["name", "providerName", "filter", "select", "top", "skip", "verbosity", "propertyName"],
    },
    "write_connections": {
        "description": (
            "⚠️ WRITE OPERATION - Create, update, or delete connections. Connection strings are "
            "provider-specific and may contain credentials. Connections used by running jobs "
            "cannot be modified or deleted. To change providers, delete and recreate."
        ),
        "actions": ["create", "update", "delete"],
        "params": ["name", "providerName", "connectionString", "verbosity"],
        "required": ["action", "name"],
    },

    # ============================================================================
    # JOBS
    # ============================================================================
    "read_jobs": {
        "description": (
            "Access and monitor data replication jobs. Use 'list' to see all jobs, 'count' for the "
            "total, 'get' for configuration details, 'status' for the current execution state, "
            "'history' for past runs, or 'logs' for execution logs."
        ),
        "actions": ["list", "count", "get", "status", "history", "logs"],
        "default_action": "list",
        "params": ["jobName", "jobId", "filter", "select", "top", "skip", "orderby", "days", "pushOnQuery"],
    },
    "write_jobs": {
        "description": (
            "⚠️ WRITE OPERATION - Create, modify, or delete data replication jobs. Source and "
            "destination must be existing, tested connections. Use table names exactly as "
            "reported by the source connection. Job types: 1=Standard, 2=Sync All tables, "
            "3=Load Folder, 7=Change Data Capture, 10=Reverse ETL. Running jobs cannot be "
            "modified or deleted."
        ),
        "actions": ["create", "update", "delete"],
        "params": [
            "jobName", "source", "destination", "type", "queries", "scheduled", "scheduledCron",
            "verbosity", "batchSize", "commandTimeout", "continueOnError", "dropTable",
            "truncateTableData", "alterSchema", "autoTruncateStrings", "skipDeleted",
            "useGmtDateTime", "tableNamePrefix", "cacheSchema", "replicateStartDate",
            "replicateInterval", "replicateIntervalUnit", "sendEmailNotification",
            "emailErrorOnly", "notifyEmailTo", "notifyEmailSubject", "notifyWindowsEvent",
            "preJob", "postJob", "otherCacheOptions",
        ],
        "required": ["action", "jobName"],
    },
    "execute_job": {
        "description": (
            "⚠️ EXECUTES A JOB - Run a job immediately, bypassing its schedule. Use "
            "waitForResults=true to wait for completion, or false to start asynchronously."
        ),
        "params": ["jobName", "jobId", "waitForResults", "timeout"],
    },
    "cancel_job": {
        "description": (
            "⚠️ WRITE OPERATION - Stop a running job. The current task may finish first and "
            "partial data may remain in the destination."
        ),
        "params": ["jobName", "jobId"],
    },

    # ============================================================================
    # TASKS
    # ============================================================================
    "read_tasks": {
        "description": (
            "Access tasks within jobs. Use 'get' to see all tasks of one job (jobName required), "
            "'list' or 'count' across jobs, or 'property' to read one property. TaskIds are large "
            "numbers and are always returned as strings."
        ),
        "actions": ["get", "list", "count", "property"],
        "default_action": "get",
        "params": ["jobName", "filter", "select", "top", "skip", "propertyName"],
    },
    "write_tasks": {
        "description": (
            "⚠️ WRITE OPERATION - Create, update, or delete tasks within a job. Use "
            "'REPLICATE [TableName]' with exact source table names, or custom SQL. Pass TaskIds "
            "exactly as returned by read_tasks."
        ),
        "actions": ["create", "update", "delete"],
        "params": ["jobName", "taskId", "table", "query", "index"],
        "required": ["action", "jobName"],
    },

    # ============================================================================
    # QUERIES AND DISCOVERY
    # ============================================================================
    "execute_query": {
        "description": (
            "⚠️ EXECUTES QUERIES - Run queries that are already defined as tasks in a job, using "
            "that job's connections. Arbitrary SQL is not supported."
        ),
        "params": ["jobName", "jobId", "queries", "waitForResults", "timeout"],
        "required": ["queries"],
    },
    "get_connection_tables": {
        "description": (
            "Discover the tables and views available in a connection. Use the exact names "
            "returned here when creating REPLICATE tasks."
        ),
        "params": [
            "connectionName", "schema", "tableOrView", "includeSchema", "includeCatalog",
            "topTable", "skipTable",
        ],
        "required": ["connectionName"],
    },
    "get_table_columns": {
        "description": "Get column names, data types and key information for one table of a connection.",
        "params": ["connectionName", "table"],
        "required": ["connectionName", "table"],
    },
    "get_job_tables": {
        "description": (
            "List the tables that can still be added to a job, considering the job's "
            "configuration and its source connection."
        ),
        "params": [
            "connectionName", "jobId", "schema", "tableOrView", "includeSchema",
            "includeCatalog", "topTable", "skipTable",
        ],
        "required": ["connectionName", "jobId"],
    },

    # ============================================================================
    # USERS
    # ============================================================================
    "read_users": {
        "description": (
            "Access CData Sync user accounts. Roles: cdata_admin (full access), cdata_standard "
            "(run jobs), cdata_job_creator (create/modify jobs), cdata_support (operate jobs)."
        ),
        "actions": ["list", "count", "get", "property"],
        "default_action": "list",
        "params": ["user", "filter", "select", "top", "skip", "propertyName"],
    },
    "write_users": {
        "description": (
            "⚠️ WRITE OPERATION - Create users (single or bulk via 'users') or update one user. "
            "Users cannot be deleted through the API."
        ),
        "actions": ["create", "update"],
        "params": ["user", "password", "roles", "active", "federationId", "expiredIn", "users"],
        "required": ["action"],
    },

    # ============================================================================
    # MONITORING
    # ============================================================================
    "read_history": {
        "description": (
            "Access job execution history: when each job ran, its status, duration and records "
            "affected. Use 'list' with filters/sorting or 'count'."
        ),
        "actions": ["list", "count"],
        "default_action": "list",
        "params": ["filter", "orderby", "select", "top", "skip"],
    },
    "read_requests": {
        "description": (
            "Access API request logs for auditing and debugging: user, timestamp, endpoint and "
            "response status of every call made to CData Sync."
        ),
        "actions": ["list", "count", "get", "property"],
        "default_action": "list",
        "params": ["id", "filter", "select", "top", "skip", "propertyName"],
        "overrides": {"id": {"type": "string", "pattern": UUID_PATTERN, "description": "Request ID (UUID format)"}},
    },
    "write_requests": {
        "description": (
            "⚠️ DESTRUCTIVE OPERATION - Delete an API request log entry. Does not undo the "
            "original operation."
        ),
        "actions": ["delete"],
        "params": ["id"],
        "required": ["action", "id"],
        "overrides": {"id": {"type": "string", "pattern": UUID_PATTERN, "description": "Request ID to delete (UUID format)"}},
    },

    # ============================================================================
    # TRANSFORMATIONS
    # ============================================================================
    "read_transformations": {
        "description": (
            "Access transformations: SQL that runs in the destination after jobs complete (ELT). "
            "Use 'list', 'count', 'get' or 'property'."
        ),
        "actions": ["list", "count", "get", "property"],
        "default_action": "list",
        "params": ["transformationName", "filter", "select", "top", "skip", "propertyName"],
    },
    "write_transformations": {
        "description": (
            "⚠️ WRITE OPERATION - Create, update, or delete transformations. They can run on a "
            "cron schedule or after a specific job succeeds."
        ),
        "actions": ["create", "update", "delete"],
        "params": [
            "transformationName", "connection", "queries", "transformationTriggerMode",
            "scheduledCron", "triggerAfterJob", "triggerTasks", "verbosity",
            "sendEmailNotification", "emailErrorOnly", "notifyEmailTo", "notifyEmailSubject",
            "commandTimeout", "automaticJobRetry", "projectPath", "dbtSchema", "type", "threads",
            "projectType", "gitRepositoryURL", "gitToken",
        ],
        "required": ["action", "transformationName"],
        "overrides": {"type": {"type": "string", "description": "dbt project type (update only)"}},
    },

    # ============================================================================
    # CERTIFICATES
    # ============================================================================
    "read_certificates": {
        "description": "List SSL/TLS certificates, including expiration dates.",
        "actions": ["list"],
        "default_action": "list",
        "params": ["filter", "select", "top", "skip"],
    },
    "write_certificates": {
        "description": (
            "⚠️ WRITE OPERATION - Upload a base64-encoded SSL/TLS certificate (.cer, .pfx, .p12)."
        ),
        "actions": ["create"],
        "params": ["name", "data", "storeType"],
        "required": ["action", "name"],
        "overrides": {"name": {"type": "string", "pattern": NAME_PATTERN, "description": "Certificate name"}},
    },

    # ============================================================================
    # WORKSPACES
    # ============================================================================
    "read_workspaces": {
        "description": (
            "Access workspaces, the partitions that hold connections, jobs and transformations. "
            "Use 'get' with either id or name."
        ),
        "actions": ["list", "count", "get", "property"],
        "default_action": "list",
        "params": ["id", "name", "filter", "select", "top", "skip", "propertyName"],
        "overrides": {
            "id": {"type": "string", "description": "Workspace ID"},
            "name": {"type": "string", "pattern": NAME_PATTERN, "description": "Workspace name"},
        },
    },
    "write_workspaces": {
        "description": (
            "⚠️ WRITE OPERATION - Create, rename, or delete workspaces. Identify an existing "
            "workspace by id or name."
        ),
        "actions": ["create", "update", "delete"],
        "params": ["id", "name", "newName"],
        "required": ["action"],
        "overrides": {
            "id": {"type": "string", "description": "Workspace ID"},
            "name": {"type": "string", "pattern": NAME_PATTERN, "description": "Workspace name"},
        },
    },
}


PARAM_DEFINITIONS = {
    # Paging and OData
    "filter": {"type": "string", "description": "OData filter expression, e.g. \"contains(Name,'value')\""},
    "select": {"type": "string", "description": "Comma-separated properties to include"},
    "top": {"type": "integer", "minimum": 1, "maximum": 1000, "description": "Maximum number of results"},
    "skip": {"type": "integer", "minimum": 0, "description": "Number of results to skip"},
    "orderby": {"type": "string", "description": "Sort order, e.g. 'RunStartDate desc'"},
    "propertyName": {"type": "string", "description": "Property to read for the 'property' action"},
    # Connections
    "name": {"type": "string", "pattern": NAME_PATTERN, "description": "Connection name. Case-sensitive."},
    "providerName": {"type": "string", "description": "ADO.NET provider, e.g. 'CData Salesforce'. Cannot be changed after creation."},
    "connectionString": {"type": "string", "description": "Provider-specific connection parameters. May contain credentials."},
    "verbosity": VERBOSITY,
    "connectionName": {"type": "string", "pattern": NAME_PATTERN, "description": "Connection name"},
    "schema": {"type": "string", "maxLength": 50, "description": "Schema to query, e.g. 'dbo'. Omit for all schemas."},
    "table": {"type": "string", "description": "Table name exactly as reported by the source connection"},
    "tableOrView": {"type": "string", "enum": ["TABLES", "VIEWS", "ALL"], "default": "ALL", "description": "Filter by object type"},
    "includeSchema": {"type": "boolean", "description": "Include the schema in table names"},
    "includeCatalog": {"type": "boolean", "description": "Include the catalog in table names"},
    "topTable": {"type": "integer", "minimum": 1, "maximum": 5000, "description": "Maximum tables to return"},
    "skipTable": {"type": "integer", "minimum": 0, "description": "Tables to skip"},
    # Jobs
    "jobName": {"type": "string", "pattern": NAME_PATTERN, "description": "Job name. Case-sensitive."},
    "jobId": {"type": "string", "pattern": UUID_PATTERN, "description": "Job UUID (alternative to jobName)"},
    "source": {"type": "string", "description": "Source connection name"},
    "destination": {"type": "string", "description": "Destination connection name"},
    "type": {"type": "integer", "enum": [1, 2, 3, 7, 10], "description": "Job type: 1=Standard, 2=Sync All, 3=Load Folder, 7=CDC, 10=Reverse ETL"},
    "queries": {"type": "array", "items": {"type": "string"}, "description": "SQL queries, e.g. 'REPLICATE [Accounts]'"},
    "scheduled": {"type": "boolean", "description": "Enable scheduled execution (set scheduledCron too)"},
    "scheduledCron": {"type": "string", "pattern": CRON_PATTERN, "description": "Five-field Unix cron expression, e.g. '0 */2 * * *'"},
    "batchSize": {"type": "string", "pattern": r"^[1-9]\d{0,6}$", "description": "Records per batch"},
    "commandTimeout": {"type": "string", "pattern": r"^[1-9]\d{0,4}$", "description": "Seconds before a query times out"},
    "continueOnError": {"type": "boolean", "description": "Continue with remaining tasks when one fails"},
    "dropTable": {"type": "boolean", "description": "Drop and recreate destination tables each run"},
    "truncateTableData": {"type": "boolean", "description": "Delete all destination rows before each run"},
    "alterSchema": {"type": "boolean", "description": "Follow source schema changes automatically"},
    "autoTruncateStrings": {"type": "boolean", "description": "Truncate strings longer than the destination column"},
    "skipDeleted": {"type": "boolean", "description": "Ignore records deleted in the source"},
    "useGmtDateTime": {"type": "boolean", "description": "Use UTC for all timestamps"},
    "tableNamePrefix": {"type": "string", "maxLength": 20, "pattern": r"^[a-zA-Z][a-zA-Z0-9_]*$", "description": "Prefix for destination tables"},
    "cacheSchema": {"type": "string", "maxLength": 50, "description": "Destination schema name"},
    "replicateStartDate": {"type": "string", "pattern": DATE_PATTERN, "description": "Replicate from this date (yyyy-MM-dd)"},
    "replicateInterval": {"type": "string", "pattern": r"^[1-9]\d{0,4}$", "description": "Replication chunk size"},
    "replicateIntervalUnit": {"type": "string", "enum": ["minutes", "hours", "days", "weeks", "months", "years"], "description": "Unit of replicateInterval"},
    "sendEmailNotification": {"type": "boolean", "description": "Send an email on completion"},
    "emailErrorOnly": {"type": "boolean", "description": "Only send email on failure"},
    "notifyEmailTo": {"type": "string", "pattern": EMAIL_LIST_PATTERN, "description": "Comma-separated email recipients"},
    "notifyEmailSubject": {"type": "string", "maxLength": 200, "description": "Email subject"},
    "notifyWindowsEvent": {"type": "boolean", "description": "Write errors to the Windows Event Log"},
    "preJob": {"type": "string", "description": "Code to run before the job starts"},
    "postJob": {"type": "string", "description": "Code to run after the job completes"},
    "otherCacheOptions": {"type": "string", "description": "Additional comma-separated key=value options"},
    "waitForResults": {"type": "boolean", "default": True, "description": "Wait for completion (default: true)"},
    "timeout": {"type": "integer", "minimum": 0, "maximum": 86400, "default": 0, "description": "Seconds to wait (0 = no timeout)"},
    "pushOnQuery": {"type": "boolean", "description": "Include per-query status (default: true)"},
    "days": {"type": "integer", "minimum": 1, "maximum": 365, "description": "Days of logs to retrieve (default: 1)"},
    # Tasks
    "taskId": {"type": "string", "pattern": r"^\d+$", "description": "Task ID as returned by read_tasks"},
    "query": {"type": "string", "description": "Task query, e.g. 'REPLICATE [Accounts]'"},
    "index": {"type": "string", "pattern": r"^[1-9]\d{0,3}$", "description": "Execution order (1, 2, 3...)"},
    # Users
    "user": {"type": "string", "pattern": USERNAME_PATTERN, "description": "Username. Case-sensitive."},
    "password": {"type": "string", "minLength": 8, "maxLength": 128, "description": "Password (minimum 8 characters)"},
    "roles": {"type": "string", "enum": ["cdata_admin", "cdata_standard", "cdata_job_creator", "cdata_support"], "description": "User role"},
    "active": {"type": "boolean", "description": "Enable or disable the user"},
    "federationId": {"type": "string", "maxLength": 100, "description": "SSO federation ID"},
    "expiredIn": {"type": "integer", "minimum": 1, "maximum": 3650, "description": "Days until the auth token expires (update only)"},
    "users": {
        "type": "array",
        "items": {
            "type": "object",
            "properties": {
                "user": {"type": "string", "pattern": USERNAME_PATTERN},
                "password": {"type": "string", "minLength": 8, "maxLength": 128},
                "roles": {"type": "string", "enum": ["cdata_admin", "cdata_standard", "cdata_job_creator", "cdata_support"]},
                "active": {"type": "boolean"},
                "federationId": {"type": "string", "maxLength": 100},
            },
            "required": ["user", "password"],
        },
        "description": "Users for bulk creation",
    },
    # Requests / workspaces
    "id": {"type": "string", "description": "Record ID"},
    "newName": {"type": "string", "pattern": NAME_PATTERN, "description": "New workspace name"},
    # Transformations
    "transformationName": {"type": "string", "pattern": NAME_PATTERN, "description": "Transformation name. Case-sensitive."},
    "connection": {"type": "string", "description": "Connection the SQL runs in (required for create)"},
    "transformationTriggerMode": {"type": "string", "enum": ["None", "Scheduled", "AfterJob"], "description": "When the transformation runs"},
    "triggerAfterJob": {"type": "string", "pattern": NAME_PATTERN, "description": "Job that triggers the transformation"},
    "triggerTasks": {"type": "string", "pattern": r"^\d+(,\d+)*$", "description": "Comma-separated task IDs to wait for"},
    "automaticJobRetry": {"type": "boolean", "description": "Retry automatically on failure"},
    "projectPath": {"type": "string", "description": "dbt project path"},
    "dbtSchema": {"type": "string", "description": "dbt target schema"},
    "threads": {"type": "string", "description": "dbt thread count"},
    "projectType": {"type": "string", "description": "dbt project type (e.g. 'Core', 'Cloud')"},
    "gitRepositoryURL": {"type": "string", "description": "Git repository of the dbt project"},
    "gitToken": {"type": "string", "description": "Token for the Git repository"},
    # Certificates
    "data": {"type": "string", "pattern": BASE64_PATTERN, "description": "Base64-encoded certificate data"},
    "storeType": {"type": "string", "description": "Certificate store type, e.g. 'CurrentUser'"},
    # Configuration
    "baseUrl": {"type": "string", "pattern": r"^https?://[\w\.-]+(:\d+)?(/.*)?$", "description": "CData Sync API URL, e.g. 'http://localhost:8181/api.rsc'. '/api.rsc' is appended when missing."},
    "authToken": {"type": "string", "minLength": 10, "description": "CData Sync auth token. Replaces basic auth."},
    "username": {"type": "string", "minLength": 1, "maxLength": 100, "description": "Username for basic auth"},
    "clearAuth": {"type": "boolean", "description": "⚠️ Remove all credentials"},
    "workspace": {"type": "string", "description": "Default workspace for all requests ('default' for the built-in one)"},
    # Shared
    "workspaceId": {"type": "string", "description": "Run this call against another workspace (defaults to the configured one)"},
}


def build_tool_schema(tool_name: str, tool_config: dict) -> Tool:
    """Build a Tool object from its TOOLS entry."""
    properties = {}

    if "actions" in tool_config:
        action = {
            "type": "string",
            "enum": list(tool_config["actions"]),
            "description": f"Operation to perform: {', '.join(tool_config['actions'])}",
        }
        if "default_action" in tool_config:
            action["default"] = tool_config["default_action"]
        properties["action"] = action

    overrides = tool_config.get("overrides", {})
    for param in tool_config["params"]:
        properties[param] = (overrides.get(param) or PARAM_DEFINITIONS[param]).copy()

    if tool_config.get("workspace_scoped", True):
        properties["workspaceId"] = PARAM_DEFINITIONS["workspaceId"].copy()

    input_schema = {"type": "object", "properties": properties}
    if tool_config.get("required"):
        input_schema["required"] = list(tool_config["required"])

    return Tool(name=tool_name, description=tool_config["description"], inputSchema=input_schema)


def get_all_tools() -> list[Tool]:
    return [build_tool_schema(name, config) for name, config in TOOLS.items()]
