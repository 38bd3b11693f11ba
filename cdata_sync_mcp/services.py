"""Resource services: one class per CData Sync resource type.

Each service maps a handful of operations (list/count/get/create/update/
delete/execute) onto api.rsc endpoints, renaming camelCase tool arguments
to the PascalCase fields the API expects.
"""

import logging
import socket
from typing import Any, Awaitable, Callable
from urllib.parse import quote

import httpx

from .client import CDataSyncClient
from .config import DEFAULT_WORKSPACE, SyncConfig
from .converters import (
    USER_ROLES,
    extract_array,
    extract_count,
    is_valid_url,
    numbered_fields,
    to_boolean,
    to_boolean_string,
    to_id_string,
    to_user_role,
)
from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# (API field, converter) per camelCase tool argument. A converter of None
# passes the value through unchanged.
FieldMap = dict[str, tuple[str, Callable[[Any], Any] | None]]

JOB_OPTION_FIELDS: FieldMap = {
    "scheduled": ("Scheduled", to_boolean_string),
    "scheduledCron": ("ScheduledCron", None),
    "notifyWindowsEvent": ("NotifyWindowsEvent", to_boolean_string),
    "sendEmailNotification": ("SendEmailNotification", to_boolean_string),
    "notifyEmailTo": ("NotifyEmailTo", None),
    "notifyEmailSubject": ("NotifyEmailSubject", None),
    "emailErrorOnly": ("EmailErrorOnly", to_boolean_string),
    "verbosity": ("Verbosity", str),
    "tableNamePrefix": ("TableNamePrefix", None),
    "useGmtDateTime": ("UseGmtDateTime", to_boolean_string),
    "truncateTableData": ("TruncateTableData", to_boolean_string),
    "dropTable": ("DropTable", to_boolean_string),
    "autoTruncateStrings": ("AutoTruncateStrings", to_boolean_string),
    "continueOnError": ("ContinueOnError", to_boolean_string),
    "alterSchema": ("AlterSchema", to_boolean_string),
    "replicateInterval": ("ReplicateInterval", str),
    "replicateIntervalUnit": ("ReplicateIntervalUnit", None),
    "replicateStartDate": ("ReplicateStartDate", None),
    "batchSize": ("BatchSize", str),
    "commandTimeout": ("CommandTimeout", str),
    "skipDeleted": ("SkipDeleted", to_boolean_string),
    "otherCacheOptions": ("OtherCacheOptions", None),
    "cacheSchema": ("CacheSchema", None),
    "preJob": ("PreJob", None),
    "postJob": ("PostJob", None),
    "type": ("Type", str),
}

TRANSFORMATION_OPTION_FIELDS: FieldMap = {
    "connection": ("Connection", None),
    "transformationTriggerMode": ("TransformationTriggerMode", None),
    "triggerAfterJob": ("TriggerAfterJob", None),
    "triggerTasks": ("TriggerTasks", None),
    "scheduledCron": ("ScheduledCron", None),
    "sendEmailNotification": ("SendEmailNotification", to_boolean_string),
    "notifyEmailTo": ("NotifyEmailTo", None),
    "notifyEmailSubject": ("NotifyEmailSubject", None),
    "emailErrorOnly": ("EmailErrorOnly", to_boolean_string),
    "verbosity": ("Verbosity", str),
    "commandTimeout": ("CommandTimeout", str),
    "automaticJobRetry": ("AutomaticJobRetry", to_boolean_string),
}

# dbt project settings, accepted on update only
TRANSFORMATION_DBT_FIELDS: FieldMap = {
    "projectPath": ("ProjectPath", None),
    "dbtSchema": ("DBTSchema", None),
    "type": ("Type", None),
    "threads": ("Threads", None),
    "projectType": ("ProjectType", None),
    "gitRepositoryURL": ("GitRepositoryURL", None),
    "gitToken": ("GitToken", None),
}


def map_fields(options: dict[str, Any], fields: FieldMap) -> dict[str, Any]:
    """Rename the provided options to API fields, skipping unset values."""
    body = {}
    for name, (api_field, convert) in fields.items():
        value = options.get(name)
        if value is None or value == "":
            continue
        body[api_field] = convert(value) if convert else value
    return body


def list_query(
    filter: str | None = None,
    select: str | None = None,
    top: int | None = None,
    skip: int | None = None,
    orderby: str | None = None,
) -> dict[str, str]:
    """Build OData query options; unset and zero values are omitted."""
    params = {}
    if filter:
        params["$filter"] = filter
    if select:
        params["$select"] = select
    if top:
        params["$top"] = str(top)
    if skip:
        params["$skip"] = str(skip)
    if orderby:
        params["$orderby"] = orderby
    return params


def require(value: Any, message: str) -> None:
    if value is None or value == "":
        raise ValueError(message)


def _is_dns_failure(error: BaseException) -> bool:
    current: BaseException | None = error
    while current is not None:
        if isinstance(current, socket.gaierror):
            return True
        current = current.__cause__ or current.__context__
    text = str(error).lower()
    return "name or service not known" in text or "nodename nor servname" in text or "getaddrinfo" in text


class BaseService:
    resource_name = "Resource"

    def __init__(self, client: CDataSyncClient):
        self.client = client

    @property
    def workspace(self) -> str:
        return self.client.workspace

    @staticmethod
    def entity_endpoint(base_path: str, key: str) -> str:
        return f"{base_path}('{quote(str(key), safe='')}')"

    def translate_error(self, error: Exception, endpoint: str) -> Exception:
        """Turn connectivity and auth failures into actionable ConfigurationErrors."""
        context = f" [workspace: {self.workspace}]"
        if isinstance(error, httpx.ConnectError):
            if _is_dns_failure(error):
                return ConfigurationError(
                    "CData Sync server hostname not found. Please verify the base URL is correct. "
                    f"Use 'configure_sync_server' tool to update the base URL.{context}"
                )
            return ConfigurationError(
                "Cannot connect to CData Sync server. Please verify the base URL is correct and "
                f"CData Sync is running. Use 'configure_sync_server' tool to update the base URL.{context}"
            )
        if isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code
            if status == 401:
                return ConfigurationError(
                    "Authentication failed. Please verify your credentials are correct. Use "
                    "'configure_sync_server' tool to update authentication (authToken or "
                    f"username/password).{context}"
                )
            # a missing collection means a wrong base URL, a missing entity does not
            if status == 404 and "/api.rsc" in str(error.request.url) and "('" not in endpoint:
                return ConfigurationError(
                    "CData Sync API endpoint not found. Please verify the base URL is correct and "
                    "includes the correct path. Use 'configure_sync_server' tool to update the "
                    f"base URL.{context}"
                )
        return error

    async def _request(
        self,
        method: str,
        endpoint: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            return await self.client.request(method, endpoint, body=body, params=params)
        except (httpx.HTTPStatusError, httpx.ConnectError) as e:
            error = self.translate_error(e, endpoint)
            if error is e:
                raise
            raise error from e

    async def _list(self, endpoint: str, **query) -> list[Any]:
        result = await self._request("GET", endpoint, params=list_query(**query))
        if result is None:
            return []
        return extract_array(result)

    async def _count(self, endpoint: str, filter: str | None = None) -> int:
        params = {"$filter": filter} if filter else None
        try:
            result = await self.client.get(f"{endpoint}/$count", params=params)
        except httpx.HTTPStatusError as e:
            if e.response.status_code not in (404, 405):
                error = self.translate_error(e, endpoint)
                if error is e:
                    raise
                raise error from e
            logger.warning("Count endpoint not supported for %s, using fallback", endpoint)
            items = await self._request("GET", endpoint, params=list_query(filter=filter, select="Id"))
            return len(extract_array(items)) if items is not None else 0
        except httpx.ConnectError as e:
            raise self.translate_error(e, endpoint) from e
        return extract_count(result)

    async def _delete(
        self, endpoint: str, resource_name: str | None = None, params: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        await self._request("DELETE", endpoint, params=params)
        return {
            "success": True,
            "message": f"{resource_name or self.resource_name} deleted successfully [workspace: {self.workspace}]",
        }

    async def _property(self, endpoint: str, property_name: str) -> Any:
        require(property_name, "Property name is required")
        return await self._request("GET", f"{endpoint}/{quote(property_name, safe='')}/$value")

    def _with_workspace_id(self, body: dict[str, Any]) -> dict[str, Any]:
        """POST bodies of workspace-scoped resources also carry WorkspaceId."""
        if self.workspace and self.workspace != DEFAULT_WORKSPACE:
            body["WorkspaceId"] = self.workspace
        return body


class ConnectionService(BaseService):
    resource_name = "Connection"

    async def list_connections(self, **query) -> list[Any]:
        return await self._list("/connections", **query)

    async def count_connections(self, filter: str | None = None) -> int:
        return await self._count("/connections", filter)

    async def get_connection(self, name: str) -> Any:
        require(name, "Connection name is required")
        return await self._request("GET", self.entity_endpoint("/connections", name))

    async def test_connection(
        self, name: str, provider_name: str | None = None, verbosity: str | None = None
    ) -> dict[str, Any]:
        require(name, "Connection name is required")
        body: dict[str, Any] = {"ConnectionName": name}
        if provider_name:
            body["ProviderName"] = provider_name
        if verbosity:
            body["Verbosity"] = str(verbosity)
        logger.debug("Testing connection: %s", body)
        result = await self._request("POST", "/testConnection", body=body)
        return {
            "success": True,
            "message": f"Connection '{name}' tested successfully",
            "details": result,
        }

    async def create_connection(
        self, name: str, provider_name: str, connection_string: str, verbosity: str | None = None
    ) -> Any:
        require(name, "Connection name is required")
        require(provider_name, "Provider name is required for create")
        require(connection_string, "Connection string is required for create")
        body: dict[str, Any] = {
            "Name": name,
            "ProviderName": provider_name,
            "ConnectionString": connection_string,
        }
        if verbosity:
            body["Verbosity"] = str(verbosity)
        return await self._request("POST", "/connections", body=body)

    async def update_connection(
        self, name: str, connection_string: str | None = None, verbosity: str | None = None
    ) -> Any:
        require(name, "Connection name is required")
        body: dict[str, Any] = {}
        if connection_string:
            body["ConnectionString"] = connection_string
        if verbosity:
            body["Verbosity"] = str(verbosity)
        return await self._request("PUT", self.entity_endpoint("/connections", name), body=body)

    async def delete_connection(self, name: str) -> dict[str, Any]:
        require(name, "Connection name is required")
        return await self._delete(self.entity_endpoint("/connections", name))

    async def get_connection_property(self, name: str, property_name: str) -> Any:
        require(name, "Connection name is required")
        return await self._property(self.entity_endpoint("/connections", name), property_name)

    async def get_connection_tables(
        self,
        connection_name: str,
        table_or_view: str | None = None,
        schema: str | None = None,
        include_catalog: bool | None = None,
        include_schema: bool | None = None,
        top_table: int | None = None,
        skip_table: int | None = None,
    ) -> list[Any]:
        require(connection_name, "Connection name is required")
        body = _table_discovery_body(
            table_or_view, schema, include_catalog, include_schema, top_table, skip_table
        )
        body = {"ConnectionName": connection_name, **body}
        result = await self._request("POST", "/getConnectionTables", body=body)
        return extract_array(result) if result is not None else []

    async def get_table_columns(self, connection_name: str, table: str) -> list[Any]:
        require(connection_name, "Connection name is required")
        require(table, "Table name is required")
        body = {"ConnectionName": connection_name, "Table": table}
        result = await self._request("POST", "/getConnectionTableColumns", body=body)
        return extract_array(result) if result is not None else []


def _table_discovery_body(
    table_or_view: str | None,
    schema: str | None,
    include_catalog: bool | None,
    include_schema: bool | None,
    top_table: int | None,
    skip_table: int | None,
) -> dict[str, Any]:
    body: dict[str, Any] = {"TableOrView": table_or_view or "ALL"}
    if schema:
        body["Schema"] = schema
    # these two flags are capitalized in the API docs
    if include_catalog is not None:
        body["IncludeCatalog"] = "True" if to_boolean(include_catalog) else "False"
    if include_schema is not None:
        body["IncludeSchema"] = "True" if to_boolean(include_schema) else "False"
    if top_table is not None:
        body["TopTable"] = str(top_table)
    if skip_table is not None:
        body["SkipTable"] = str(skip_table)
    return body


def _job_reference(job_name: str | None, job_id: str | int | None) -> dict[str, str]:
    if not job_name and not job_id:
        raise ValueError("Either jobName or jobId is required")
    body = {}
    if job_id:
        body["JobId"] = to_id_string(job_id)
    if job_name:
        body["JobName"] = job_name
    return body


def _as_list(result: Any) -> list[Any]:
    if result is None:
        return []
    if isinstance(result, list):
        return result
    return [result]


class JobService(BaseService):
    resource_name = "Job"

    async def list_jobs(self, **query) -> list[Any]:
        return await self._list("/jobs", **query)

    async def count_jobs(self, filter: str | None = None) -> int:
        return await self._count("/jobs", filter)

    async def get_job(self, job_name: str) -> Any:
        require(job_name, "Job name is required for getting job details")
        endpoint = self.entity_endpoint("/jobs", job_name)
        try:
            return await self._request("GET", endpoint)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise ValueError(f"Job '{job_name}' not found") from e
            if e.response.status_code == 400:
                raise ValueError(
                    f"Invalid job name '{job_name}'. Please check the job name is correct."
                ) from e
            raise

    async def create_job(
        self, job_name: str, source: str, destination: str, options: dict[str, Any] | None = None
    ) -> Any:
        require(job_name, "Job name is required")
        require(source, "Source is required for job creation")
        require(destination, "Destination is required for job creation")
        options = options or {}
        body = {"JobName": job_name, "Source": source, "Destination": destination}
        body.update(map_fields(options, JOB_OPTION_FIELDS))
        body.update(numbered_fields("Query", options.get("queries") or []))
        logger.debug("Creating job: %s", body)
        return await self._request("POST", "/jobs", body=body)

    async def update_job(self, job_name: str, options: dict[str, Any] | None = None) -> Any:
        require(job_name, "Job name is required")
        options = options or {}
        body: dict[str, Any] = {}
        if options.get("source"):
            body["Source"] = options["source"]
        if options.get("destination"):
            body["Destination"] = options["destination"]
        body.update(map_fields(options, JOB_OPTION_FIELDS))
        body.update(numbered_fields("Query", options.get("queries") or []))
        logger.debug("Updating job %s: %s", job_name, body)
        return await self._request("PUT", self.entity_endpoint("/jobs", job_name), body=body)

    async def delete_job(self, job_name: str) -> dict[str, Any]:
        require(job_name, "Job name is required")
        return await self._delete(self.entity_endpoint("/jobs", job_name))

    async def execute_job(
        self,
        job_name: str | None = None,
        job_id: str | None = None,
        wait_for_results: bool | None = None,
        timeout: int | None = None,
    ) -> list[Any]:
        body = _job_reference(job_name, job_id)
        body["WaitForResults"] = to_boolean_string(wait_for_results is not False)
        body["Timeout"] = str(timeout or 0)
        return _as_list(await self._request("POST", "/executeJob", body=body))

    async def cancel_job(self, job_name: str | None = None, job_id: str | None = None) -> dict[str, Any]:
        body = _job_reference(job_name, job_id)
        await self._request("POST", "/cancelJob", body=body)
        return {"success": True, "message": "Job cancelled successfully"}

    async def get_job_status(
        self, job_name: str | None = None, job_id: str | None = None, push_on_query: bool | None = None
    ) -> dict[str, Any]:
        body = _job_reference(job_name, job_id)
        body["PushOnQuery"] = to_boolean_string(push_on_query is not False)
        result = await self._request("POST", "/getJobStatus", body=body)
        records = extract_array(result) if result else []
        record = records[0] if records else {}
        if not isinstance(record, dict):
            record = {"Status": record}
        return {
            "jobId": record.get("JobId") or (to_id_string(job_id) if job_id else ""),
            "jobName": record.get("JobName") or job_name or "",
            "status": record.get("Status"),
            "queries": record.get("Queries"),
        }

    async def get_job_history(self, **query) -> list[Any]:
        return await self._list("/history", **query)

    async def get_job_logs(
        self, job_name: str | None = None, job_id: str | None = None, days: int | None = None
    ) -> dict[str, Any]:
        body = _job_reference(job_name, job_id)
        days = days or 1
        body["Days"] = str(days)
        logs = await self._request("POST", "/getlogs", body=body)
        return {
            "jobName": job_name or "",
            "jobId": to_id_string(job_id) if job_id else "",
            "logs": logs,
            "days": days,
        }

    async def execute_query(
        self,
        queries: list[str],
        job_name: str | None = None,
        job_id: str | None = None,
        wait_for_results: bool | None = None,
        timeout: int | None = None,
    ) -> list[Any]:
        if not queries:
            raise ValueError("At least one query is required")
        body = _job_reference(job_name, job_id)
        body["WaitForResults"] = to_boolean_string(wait_for_results is not False)
        body["Timeout"] = str(timeout or 0)
        body.update(numbered_fields("Query", queries))
        return _as_list(await self._request("POST", "/executeQuery", body=body))

    async def get_job_tables(
        self,
        connection_name: str,
        job_id: str,
        table_or_view: str | None = None,
        schema: str | None = None,
        include_catalog: bool | None = None,
        include_schema: bool | None = None,
        top_table: int | None = None,
        skip_table: int | None = None,
    ) -> list[Any]:
        require(connection_name, "Connection name is required")
        require(job_id, "Job ID is required")
        body = {"ConnectionName": connection_name, "JobId": to_id_string(job_id)}
        body.update(
            _table_discovery_body(
                table_or_view, schema, include_catalog, include_schema, top_table, skip_table
            )
        )
        result = await self._request("POST", "/getAddingTablesForJob", body=body)
        return extract_array(result) if result is not None else []


class TaskService(BaseService):
    resource_name = "Task"

    async def list_tasks(self, **query) -> list[Any]:
        return await self._list("/tasks", **query)

    async def count_tasks(self, filter: str | None = None) -> int:
        return await self._count("/tasks", filter)

    async def get_tasks(self, job_name: str, select: str | None = None) -> Any:
        """All tasks of one job."""
        require(job_name, "Job name is required for getting task")
        params = {"$select": select} if select else None
        return await self._request("GET", self.entity_endpoint("/tasks", job_name), params=params)

    async def create_task(
        self,
        job_name: str,
        query: str | None = None,
        table: str | None = None,
        index: str | None = None,
    ) -> Any:
        require(job_name, "Job name is required for task creation")
        if not query and not table:
            raise ValueError("Either 'query' or 'table' must be provided for task creation")
        # TaskId is generated by the server
        body: dict[str, Any] = {"JobName": job_name}
        if query:
            body["Query"] = query
        if table:
            body["Table"] = table
        if index:
            body["Index"] = str(index)
        return await self._request("POST", "/tasks", body=body)

    async def update_task(
        self,
        job_name: str,
        task_id: str,
        query: str | None = None,
        table: str | None = None,
    ) -> Any:
        require(job_name, "Job name is required for task update")
        require(task_id, "Task ID is required for task update")
        body: dict[str, Any] = {"JobName": job_name, "TaskId": to_id_string(task_id)}
        if query is not None:
            body["Query"] = query
        if table is not None:
            body["Table"] = table
        logger.debug("Updating task: PUT /tasks %s", body)
        return await self._request("PUT", "/tasks", body=body)

    async def delete_task(self, job_name: str, task_id: str) -> dict[str, Any]:
        require(job_name, "Job name is required for task deletion")
        require(task_id, "Task ID is required for task deletion")
        params = {"JobName": job_name, "TaskId": to_id_string(task_id)}
        return await self._delete("/tasks", params=params)

    async def get_task_property(self, job_name: str, property_name: str) -> Any:
        require(job_name, "Job name is required")
        return await self._property(self.entity_endpoint("/tasks", job_name), property_name)


class TransformationService(BaseService):
    resource_name = "Transformation"

    async def list_transformations(self, **query) -> list[Any]:
        return await self._list("/transformations", **query)

    async def count_transformations(self, filter: str | None = None) -> int:
        return await self._count("/transformations", filter)

    async def get_transformation(self, transformation_name: str) -> Any:
        require(transformation_name, "Transformation name is required")
        return await self._request(
            "GET", self.entity_endpoint("/transformations", transformation_name)
        )

    async def create_transformation(
        self, transformation_name: str, connection: str, options: dict[str, Any] | None = None
    ) -> Any:
        require(transformation_name, "Transformation name is required")
        require(connection, "Connection is required for transformation creation")
        options = {**(options or {}), "connection": connection}
        body = {"TransformationName": transformation_name}
        body.update(map_fields(options, TRANSFORMATION_OPTION_FIELDS))
        body.update(numbered_fields("Query", options.get("queries") or []))
        return await self._request("POST", "/transformations", body=self._with_workspace_id(body))

    async def update_transformation(
        self, transformation_name: str, options: dict[str, Any] | None = None
    ) -> Any:
        require(transformation_name, "Transformation name is required")
        options = options or {}
        body = map_fields(options, TRANSFORMATION_OPTION_FIELDS)
        body.update(numbered_fields("Query", options.get("queries") or []))
        body.update(map_fields(options, TRANSFORMATION_DBT_FIELDS))
        return await self._request(
            "PUT", self.entity_endpoint("/transformations", transformation_name), body=body
        )

    async def delete_transformation(self, transformation_name: str) -> dict[str, Any]:
        require(transformation_name, "Transformation name is required")
        return await self._delete(self.entity_endpoint("/transformations", transformation_name))

    async def get_transformation_property(self, transformation_name: str, property_name: str) -> Any:
        require(transformation_name, "Transformation name is required")
        return await self._property(
            self.entity_endpoint("/transformations", transformation_name), property_name
        )


def _map_role(role: str) -> str:
    if role in USER_ROLES:
        return role
    try:
        return to_user_role(role)
    except ValueError:
        # let the API reject it
        return role


class UserService(BaseService):
    resource_name = "User"

    async def list_users(self, **query) -> list[Any]:
        return await self._list("/users", **query)

    async def count_users(self, filter: str | None = None) -> int:
        return await self._count("/users", filter)

    async def get_user(self, user: str) -> Any:
        require(user, "Username is required")
        return await self._request("GET", self.entity_endpoint("/users", user))

    async def create_user(
        self,
        user: str,
        password: str,
        roles: str,
        active: bool | None = None,
        federation_id: str | None = None,
    ) -> Any:
        require(user, "Username is required")
        require(password, "Password is required")
        require(roles, "User role is required")
        body: dict[str, Any] = {"User": user, "Password": password, "Roles": _map_role(roles)}
        if active is not None:
            body["Active"] = to_boolean(active)
        if federation_id:
            body["FederationId"] = federation_id
        return await self._request("POST", "/users", body=body)

    async def create_users(self, users: list[dict[str, Any]]) -> dict[str, Any]:
        if not isinstance(users, list) or not users:
            raise ValueError("Users array cannot be empty")
        body: dict[str, Any] = {}
        for number, entry in enumerate(users, start=1):
            if not entry.get("user") or not entry.get("password"):
                raise ValueError(
                    f"User at index {number - 1} is missing required 'user' or 'password' field"
                )
            body[f"User#{number}"] = entry["user"]
            body[f"Password#{number}"] = entry["password"]
            if entry.get("roles"):
                body[f"Roles#{number}"] = _map_role(entry["roles"])
            if entry.get("federationId"):
                body[f"FederationId#{number}"] = entry["federationId"]
            body[f"Active#{number}"] = "false" if entry.get("active") is False else "true"
        await self._request("POST", "/createUsers", body=body)
        return {
            "success": True,
            "message": f"Created {len(users)} users successfully",
            "created": len(users),
            "failed": 0,
        }

    async def update_user(
        self,
        user: str,
        password: str | None = None,
        roles: str | None = None,
        active: bool | None = None,
        expired_in: int | None = None,
        federation_id: str | None = None,
    ) -> Any:
        require(user, "Username is required for update")
        body: dict[str, Any] = {"User": user}
        if password:
            body["Password"] = password
        if roles:
            body["Roles"] = _map_role(roles)
        if active is not None:
            body["Active"] = to_boolean(active)
        if expired_in is not None:
            body["ExpiredIn"] = expired_in
        if federation_id is not None:
            body["FederationId"] = federation_id
        if len(body) == 1:
            raise ValueError("At least one field must be provided for update")
        return await self._request("PUT", self.entity_endpoint("/users", user), body=body)

    async def get_user_property(self, user: str, property_name: str) -> Any:
        require(user, "Username is required")
        return await self._property(self.entity_endpoint("/users", user), property_name)


class RequestService(BaseService):
    resource_name = "Request"

    async def list_requests(self, **query) -> list[Any]:
        return await self._list("/requests", **query)

    async def count_requests(self, filter: str | None = None) -> int:
        return await self._count("/requests", filter)

    async def get_request(self, request_id: str) -> Any:
        require(request_id, "Request ID is required")
        return await self._request("GET", self.entity_endpoint("/requests", request_id))

    async def delete_request(self, request_id: str) -> dict[str, Any]:
        require(request_id, "Request ID is required for deletion")
        return await self._delete(self.entity_endpoint("/requests", request_id), "Request log")

    async def get_request_property(self, request_id: str, property_name: str) -> Any:
        require(request_id, "Request ID is required")
        return await self._property(self.entity_endpoint("/requests", request_id), property_name)


class HistoryService(BaseService):
    resource_name = "History"

    async def list_history(self, **query) -> list[Any]:
        records = await self._list("/history", **query)
        history = []
        for record in records:
            if isinstance(record, dict):
                record = dict(record)
                record_id = record.get("Id", record.get("id"))
                if record_id is not None:
                    record["Id"] = to_id_string(record_id)
            history.append(record)
        return history

    async def count_history(self, filter: str | None = None) -> int:
        return await self._count("/history", filter)


class CertificateService(BaseService):
    resource_name = "Certificate"

    async def list_certificates(self, **query) -> list[Any]:
        return await self._list("/certificates", **query)

    async def create_certificate(self, name: str, data: str, store_type: str) -> Any:
        require(name, "Certificate name is required")
        require(data, "Certificate data is required")
        require(store_type, "Store type is required")
        body = {"Name": name, "Data": data, "StoreType": store_type}
        return await self._request("POST", "/certificates", body=self._with_workspace_id(body))


class WorkspaceService(BaseService):
    resource_name = "Workspace"

    async def list_workspaces(self, **query) -> list[Any]:
        return await self._list("/workspaces", **query)

    async def count_workspaces(self, filter: str | None = None) -> int:
        return await self._count("/workspaces", filter)

    async def get_workspace_by_id(self, workspace_id: str) -> Any:
        require(workspace_id, "Workspace ID is required")
        return await self._request("GET", "/workspaces", body={"Id": workspace_id})

    async def get_workspace_by_name(self, name: str) -> Any:
        require(name, "Workspace name is required")
        return await self._request("GET", self.entity_endpoint("/workspaces", name))

    async def create_workspace(self, name: str) -> Any:
        require(name, "Workspace name is required")
        return await self._request("POST", "/workspaces", body={"Name": name})

    async def update_workspace_by_id(self, workspace_id: str, new_name: str) -> Any:
        require(workspace_id, "Workspace ID is required for update")
        require(new_name, "New workspace name is required")
        return await self._request("PUT", "/workspaces", body={"Id": workspace_id, "Name": new_name})

    async def update_workspace(self, name: str, new_name: str) -> Any:
        require(name, "Workspace name is required for update")
        require(new_name, "New workspace name is required for update")
        workspace = await self.get_workspace_by_name(name)
        return await self.update_workspace_by_id(_workspace_id(workspace, name), new_name)

    async def delete_workspace_by_id(self, workspace_id: str) -> dict[str, Any]:
        require(workspace_id, "Workspace ID is required for deletion")
        await self._request("DELETE", "/workspaces", body={"Id": workspace_id})
        return {"success": True, "message": f"Workspace with ID '{workspace_id}' deleted successfully"}

    async def delete_workspace(self, name: str) -> dict[str, Any]:
        require(name, "Workspace name is required for deletion")
        workspace = await self.get_workspace_by_name(name)
        await self.delete_workspace_by_id(_workspace_id(workspace, name))
        return {"success": True, "message": f"Workspace '{name}' deleted successfully"}

    async def get_workspace_property(self, name: str, property_name: str) -> Any:
        require(name, "Workspace name is required")
        return await self._property(self.entity_endpoint("/workspaces", name), property_name)


def _workspace_id(workspace: Any, name: str) -> str:
    records = extract_array(workspace) if workspace else []
    record = records[0] if records else None
    if not isinstance(record, dict) or not record.get("Id"):
        raise ValueError(f"Workspace '{name}' not found")
    return to_id_string(record["Id"])


class SyncConfigService:
    """Holds the live API configuration and applies validated changes to it."""

    def __init__(
        self,
        config: SyncConfig,
        on_change: Callable[[SyncConfig], None] | None = None,
        validate_workspace: Callable[[str], Awaitable[None]] | None = None,
    ):
        self.config = config.copy()
        self.on_change = on_change
        self.validate_workspace = validate_workspace

    def get_current_config(self) -> dict[str, Any]:
        """Describe the configuration without exposing secrets."""
        return {
            "baseUrl": self.config.base_url or "",
            "authType": self.config.auth_type,
            "username": self.config.username,
            "hasPassword": bool(self.config.password),
            "hasAuthToken": bool(self.config.auth_token),
            "isConfigured": self.config.has_credentials,
            "workspace": self.config.workspace,
        }

    def is_configured(self) -> bool:
        return self.config.has_credentials

    def get_configuration_error(self) -> str:
        if not self.config.has_credentials:
            if self.config.username and not self.config.password:
                return "Incomplete basic authentication. Password is required when using username."
            return (
                "Authentication is not configured. Use configure_sync_server to set either "
                "authToken or username/password."
            )
        if not self.config.base_url:
            return "Base URL is not configured. Use configure_sync_server to set the CData Sync API URL."
        return "Configuration appears valid."

    async def update_config(
        self,
        base_url: str | None = None,
        auth_token: str | None = None,
        username: str | None = None,
        password: str | None = None,
        clear_auth: bool = False,
        workspace: str | None = None,
    ) -> dict[str, Any]:
        if base_url is not None and base_url.strip() != "" and not is_valid_url(base_url.strip()):
            return {"success": False, "message": "Invalid base URL format. Must be a valid HTTP/HTTPS URL."}
        if auth_token is not None and len(auth_token) < 10:
            return {"success": False, "message": "Auth token must be at least 10 characters long"}
        if password is not None and len(password) < 8:
            return {"success": False, "message": "Password must be at least 8 characters long"}

        new_config = self.config.copy()

        if base_url is not None:
            url = base_url.strip()
            if url and not url.endswith("/api.rsc"):
                url = url.rstrip("/") + "/api.rsc"
            new_config.base_url = url

        if clear_auth:
            new_config.auth_token = None
            new_config.username = None
            new_config.password = None
        elif auth_token is not None:
            new_config.auth_token = auth_token
            new_config.username = None
            new_config.password = None
        elif username is not None or password is not None:
            if username is not None:
                new_config.username = username
            if password is not None:
                new_config.password = password
            new_config.auth_token = None

        if new_config.username and not new_config.password:
            return {"success": False, "message": "Password is required when using basic authentication"}

        if workspace is not None and workspace != new_config.workspace:
            if workspace and workspace != DEFAULT_WORKSPACE and self.validate_workspace:
                try:
                    await self.validate_workspace(workspace)
                except Exception as e:
                    return {"success": False, "message": str(e)}
            new_config.workspace = workspace or DEFAULT_WORKSPACE

        if not new_config.base_url:
            self._apply(new_config)
            return {
                "success": True,
                "message": "Configuration updated successfully. No base URL set - CData Sync connection disabled.",
            }

        try:
            count = extract_count(await CDataSyncClient(new_config).get("/connections/$count"))
        except (httpx.HTTPError, ConfigurationError, ValueError) as e:
            # saved anyway so the server can be configured while CData Sync is down
            self._apply(new_config)
            return {
                "success": True,
                "message": f"Configuration updated, but connection test failed: {_describe_test_failure(e)} "
                "The configuration has been saved and will be used for future requests.",
            }

        self._apply(new_config)
        return {
            "success": True,
            "message": f"Configuration updated and tested successfully. Connected to CData Sync at {new_config.base_url}",
            "testResult": {"connectionCount": count},
        }

    def _apply(self, new_config: SyncConfig) -> None:
        self.config = new_config
        logger.info("CData Sync configuration updated: %s (%s auth)", new_config.base_url, new_config.auth_type)
        if self.on_change:
            self.on_change(new_config.copy())


def _describe_test_failure(error: Exception) -> str:
    if isinstance(error, httpx.HTTPStatusError):
        if error.response.status_code == 401:
            return "Authentication failed. Please verify credentials."
        if error.response.status_code == 404:
            return "API endpoint not found. Please verify the base URL."
    if isinstance(error, ConfigurationError):
        return "Authentication failed. Please verify credentials."
    if isinstance(error, httpx.ConnectError):
        if _is_dns_failure(error):
            return "Host not found. Please verify the base URL."
        return "Connection refused. CData Sync may not be running."
    return str(error)
