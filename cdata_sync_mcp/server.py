"""CData Sync MCP Server - manage CData Sync connections, jobs, tasks and more over MCP."""

import asyncio
import json
import logging
from functools import partial
from typing import Any

import anyio
import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError
from mcp.types import INTERNAL_ERROR, ErrorData, TextContent, Tool

from . import __version__
from .client import CDataSyncClient
from .config import ServerSettings, SyncConfig, configure_logging
from .converters import to_id_string
from .events import EventBroadcaster
from .services import (
    CertificateService,
    ConnectionService,
    HistoryService,
    JobService,
    RequestService,
    SyncConfigService,
    TaskService,
    TransformationService,
    UserService,
    WorkspaceService,
)
from .tools import get_all_tools
from .transport import StreamableHttpTransport, utc_timestamp
from .validation import should_validate, validate_required_parameters

logger = logging.getLogger(__name__)

# never echoed to the event stream
SECRET_ARGUMENTS = ("password", "authToken", "connectionString", "gitToken")


def _list_options(args: dict[str, Any], orderby: bool = False) -> dict[str, Any]:
    options = {name: args.get(name) for name in ("filter", "select", "top", "skip")}
    if orderby:
        options["orderby"] = args.get("orderby")
    return options


def _redact(args: dict[str, Any]) -> dict[str, Any]:
    redacted = dict(args)
    for name in SECRET_ARGUMENTS:
        if redacted.get(name):
            redacted[name] = "***"
    if isinstance(redacted.get("users"), list):
        redacted["users"] = [
            {**user, "password": "***"} if isinstance(user, dict) and user.get("password") else user
            for user in redacted["users"]
        ]
    return redacted


class SyncToolHandler:
    """Routes MCP tool calls to the resource services."""

    def __init__(self, config: SyncConfig, events: EventBroadcaster | None = None):
        self.events = events
        self.config_service = SyncConfigService(
            config, on_change=self.rebuild, validate_workspace=self.validate_workspace
        )
        self._build_services(config)
        self.handlers = {
            "configure_sync_server": self.configure_sync_server,
            "read_connections": self.read_connections,
            "write_connections": self.write_connections,
            "read_jobs": self.read_jobs,
            "write_jobs": self.write_jobs,
            "execute_job": self.execute_job,
            "cancel_job": self.cancel_job,
            "read_tasks": self.read_tasks,
            "write_tasks": self.write_tasks,
            "execute_query": self.execute_query,
            "get_connection_tables": self.get_connection_tables,
            "get_table_columns": self.get_table_columns,
            "get_job_tables": self.get_job_tables,
            "read_users": self.read_users,
            "write_users": self.write_users,
            "read_history": self.read_history,
            "read_requests": self.read_requests,
            "write_requests": self.write_requests,
            "read_transformations": self.read_transformations,
            "write_transformations": self.write_transformations,
            "read_certificates": self.read_certificates,
            "write_certificates": self.write_certificates,
            "read_workspaces": self.read_workspaces,
            "write_workspaces": self.write_workspaces,
        }

    def _build_services(self, config: SyncConfig) -> None:
        self.client = CDataSyncClient(config)
        self.connections = ConnectionService(self.client)
        self.jobs = JobService(self.client)
        self.tasks = TaskService(self.client)
        self.transformations = TransformationService(self.client)
        self.users = UserService(self.client)
        self.requests = RequestService(self.client)
        self.history = HistoryService(self.client)
        self.certificates = CertificateService(self.client)
        self.workspaces = WorkspaceService(self.client)

    def rebuild(self, config: SyncConfig) -> None:
        """Swap in a new API client and services after a configuration change."""
        self._build_services(config)
        self.broadcast("config_changed", baseUrl=config.base_url, authType=config.auth_type)
        logger.info("CData Sync connection reconfigured: %s", config.base_url)

    def broadcast(self, event: str, **data: Any) -> None:
        if self.events is not None:
            self.events.broadcast_event(event, {**data, "timestamp": utc_timestamp()})

    async def validate_workspace(self, workspace_id: str) -> None:
        not_found = (
            f"Workspace with ID '{workspace_id}' not found. "
            "Use read_workspaces tool to list available workspaces."
        )
        try:
            result = await self.client.request("GET", "/workspaces", body={"Id": workspace_id})
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise ValueError(not_found) from e
            raise
        if isinstance(result, dict) and result.get("value") == []:
            raise ValueError(not_found)

    async def call(self, name: str, arguments: dict[str, Any]) -> Any:
        if name not in self.handlers:
            raise ValueError(f"Unknown tool: {name}")

        if should_validate(name):
            action = arguments.get("action") or "execute"
            valid, missing = validate_required_parameters(name, action, arguments)
            if not valid:
                raise ValueError(f"Missing required parameters: {', '.join(missing)}")

        self.broadcast("tool_execution", tool=name, args=_redact(arguments))
        workspace_id = None if name == "configure_sync_server" else arguments.get("workspaceId")
        try:
            if workspace_id:
                await self.validate_workspace(workspace_id)
            with self.client.use_workspace(workspace_id):
                result = await self.handlers[name](arguments)
        except Exception as e:
            self.broadcast("tool_error", tool=name, error=str(e))
            raise
        self.broadcast("tool_success", tool=name)
        return result

    # ---------------------------------------------------------------- config

    async def configure_sync_server(self, args: dict[str, Any]) -> Any:
        action = args.get("action") or "get"
        if action == "get":
            return self.config_service.get_current_config()
        if action == "update":
            result = await self.config_service.update_config(
                base_url=args.get("baseUrl"),
                auth_token=args.get("authToken"),
                username=args.get("username"),
                password=args.get("password"),
                clear_auth=bool(args.get("clearAuth")),
                workspace=args.get("workspace"),
            )
            if result["success"]:
                self.broadcast(
                    "config_updated", message=result["message"], testResult=result.get("testResult")
                )
            return result
        raise ValueError(f"Invalid config action: {action}")

    # ----------------------------------------------------------- connections

    async def read_connections(self, args: dict[str, Any]) -> Any:
        action = args.get("action") or "list"
        if action == "list":
            return await self.connections.list_connections(**_list_options(args))
        if action == "count":
            return await self.connections.count_connections(args.get("filter"))
        if action == "get":
            return await self.connections.get_connection(args.get("name"))
        if action == "test":
            return await self.connections.test_connection(
                args.get("name"), args.get("providerName"), args.get("verbosity")
            )
        if action == "property":
            return await self.connections.get_connection_property(args.get("name"), args.get("propertyName"))
        raise ValueError(f"Invalid connection read action: {action}")

    async def write_connections(self, args: dict[str, Any]) -> Any:
        action = args.get("action")
        name = args.get("name")
        if action == "create":
            return await self.connections.create_connection(
                name, args.get("providerName"), args.get("connectionString"), args.get("verbosity")
            )
        if action == "update":
            return await self.connections.update_connection(
                name, args.get("connectionString"), args.get("verbosity")
            )
        if action == "delete":
            return await self.connections.delete_connection(name)
        raise ValueError(f"Invalid connection write action: {action}")

    async def get_connection_tables(self, args: dict[str, Any]) -> Any:
        return await self.connections.get_connection_tables(
            args.get("connectionName"),
            table_or_view=args.get("tableOrView"),
            schema=args.get("schema"),
            include_catalog=args.get("includeCatalog"),
            include_schema=args.get("includeSchema"),
            top_table=args.get("topTable"),
            skip_table=args.get("skipTable"),
        )

    async def get_table_columns(self, args: dict[str, Any]) -> Any:
        return await self.connections.get_table_columns(args.get("connectionName"), args.get("table"))

    # ------------------------------------------------------------------ jobs

    async def read_jobs(self, args: dict[str, Any]) -> Any:
        action = args.get("action") or "list"
        if action == "list":
            return await self.jobs.list_jobs(**_list_options(args, orderby=True))
        if action == "count":
            return await self.jobs.count_jobs(args.get("filter"))
        if action == "get":
            return await self.jobs.get_job(args.get("jobName"))
        if action == "status":
            return await self.jobs.get_job_status(
                args.get("jobName"), args.get("jobId"), args.get("pushOnQuery")
            )
        if action == "history":
            return await self.jobs.get_job_history(**_list_options(args, orderby=True))
        if action == "logs":
            return await self.jobs.get_job_logs(args.get("jobName"), args.get("jobId"), args.get("days"))
        raise ValueError(f"Invalid job read action: {action}")

    async def write_jobs(self, args: dict[str, Any]) -> Any:
        action = args.get("action")
        job_name = args.get("jobName")
        if action == "create":
            return await self.jobs.create_job(job_name, args.get("source"), args.get("destination"), args)
        if action == "update":
            return await self.jobs.update_job(job_name, args)
        if action == "delete":
            return await self.jobs.delete_job(job_name)
        raise ValueError(f"Invalid job write action: {action}")

    async def execute_job(self, args: dict[str, Any]) -> Any:
        job_id = to_id_string(args["jobId"]) if args.get("jobId") is not None else None
        result = await self.jobs.execute_job(
            args.get("jobName"), job_id, args.get("waitForResults"), args.get("timeout")
        )
        self.broadcast("job_executed", jobName=args.get("jobName") or job_id, result=result)
        return result

    async def cancel_job(self, args: dict[str, Any]) -> Any:
        job_id = to_id_string(args["jobId"]) if args.get("jobId") is not None else None
        result = await self.jobs.cancel_job(args.get("jobName"), job_id)
        self.broadcast("job_cancelled", jobName=args.get("jobName") or job_id)
        return result

    async def execute_query(self, args: dict[str, Any]) -> Any:
        queries = args.get("queries") or []
        result = await self.jobs.execute_query(
            queries,
            args.get("jobName"),
            args.get("jobId"),
            args.get("waitForResults"),
            args.get("timeout"),
        )
        self.broadcast(
            "query_executed",
            jobName=args.get("jobName") or args.get("jobId"),
            queryCount=len(queries),
            result=result,
        )
        return result

    async def get_job_tables(self, args: dict[str, Any]) -> Any:
        return await self.jobs.get_job_tables(
            args.get("connectionName"),
            args.get("jobId"),
            table_or_view=args.get("tableOrView"),
            schema=args.get("schema"),
            include_catalog=args.get("includeCatalog"),
            include_schema=args.get("includeSchema"),
            top_table=args.get("topTable"),
            skip_table=args.get("skipTable"),
        )

    # ----------------------------------------------------------------- tasks

    async def read_tasks(self, args: dict[str, Any]) -> Any:
        action = args.get("action") or "get"
        if action == "get":
            return await self.tasks.get_tasks(args.get("jobName"), args.get("select"))
        if action == "list":
            return await self.tasks.list_tasks(**_list_options(args))
        if action == "count":
            return await self.tasks.count_tasks(args.get("filter"))
        if action == "property":
            return await self.tasks.get_task_property(args.get("jobName"), args.get("propertyName"))
        raise ValueError(f"Invalid task read action: {action}")

    async def write_tasks(self, args: dict[str, Any]) -> Any:
        action = args.get("action")
        job_name = args.get("jobName")
        task_id = to_id_string(args["taskId"]) if args.get("taskId") is not None else None
        if action == "create":
            return await self.tasks.create_task(job_name, args.get("query"), args.get("table"), args.get("index"))
        if action == "update":
            return await self.tasks.update_task(job_name, task_id, args.get("query"), args.get("table"))
        if action == "delete":
            return await self.tasks.delete_task(job_name, task_id)
        raise ValueError(f"Invalid task write action: {action}")

    # --------------------------------------------------------- transformations

    async def read_transformations(self, args: dict[str, Any]) -> Any:
        action = args.get("action") or "list"
        if action == "list":
            return await self.transformations.list_transformations(**_list_options(args))
        if action == "count":
            return await self.transformations.count_transformations(args.get("filter"))
        if action == "get":
            return await self.transformations.get_transformation(args.get("transformationName"))
        if action == "property":
            return await self.transformations.get_transformation_property(
                args.get("transformationName"), args.get("propertyName")
            )
        raise ValueError(f"Invalid transformation read action: {action}")

    async def write_transformations(self, args: dict[str, Any]) -> Any:
        action = args.get("action")
        name = args.get("transformationName")
        if action == "create":
            return await self.transformations.create_transformation(name, args.get("connection"), args)
        if action == "update":
            return await self.transformations.update_transformation(name, args)
        if action == "delete":
            return await self.transformations.delete_transformation(name)
        raise ValueError(f"Invalid transformation write action: {action}")

    # ----------------------------------------------------------------- users

    async def read_users(self, args: dict[str, Any]) -> Any:
        action = args.get("action") or "list"
        if action == "list":
            return await self.users.list_users(**_list_options(args))
        if action == "count":
            return await self.users.count_users(args.get("filter"))
        if action == "get":
            return await self.users.get_user(args.get("user"))
        if action == "property":
            return await self.users.get_user_property(args.get("user"), args.get("propertyName"))
        raise ValueError(f"Invalid user read action: {action}")

    async def write_users(self, args: dict[str, Any]) -> Any:
        action = args.get("action")
        if action == "create":
            users = args.get("users")
            if isinstance(users, list) and len(users) > 1:
                return await self.users.create_users(users)
            if isinstance(users, list) and len(users) == 1:
                entry = users[0]
                return await self.users.create_user(
                    entry.get("user"),
                    entry.get("password"),
                    entry.get("roles"),
                    entry.get("active"),
                    entry.get("federationId"),
                )
            return await self.users.create_user(
                args.get("user"),
                args.get("password"),
                args.get("roles"),
                args.get("active"),
                args.get("federationId"),
            )
        if action == "update":
            return await self.users.update_user(
                args.get("user"),
                password=args.get("password"),
                roles=args.get("roles"),
                active=args.get("active"),
                expired_in=args.get("expiredIn"),
                federation_id=args.get("federationId"),
            )
        raise ValueError(f"Invalid user write action: {action}")

    # -------------------------------------------------------------- requests

    async def read_requests(self, args: dict[str, Any]) -> Any:
        action = args.get("action") or "list"
        if action == "list":
            return await self.requests.list_requests(**_list_options(args))
        if action == "count":
            return await self.requests.count_requests(args.get("filter"))
        if action == "get":
            return await self.requests.get_request(args.get("id"))
        if action == "property":
            return await self.requests.get_request_property(args.get("id"), args.get("propertyName"))
        raise ValueError(f"Invalid request read action: {action}")

    async def write_requests(self, args: dict[str, Any]) -> Any:
        action = args.get("action")
        if action == "delete":
            return await self.requests.delete_request(args.get("id"))
        raise ValueError(f"Invalid request write action: {action}")

    # --------------------------------------------------------------- history

    async def read_history(self, args: dict[str, Any]) -> Any:
        action = args.get("action") or "list"
        if action == "list":
            return await self.history.list_history(**_list_options(args, orderby=True))
        if action == "count":
            return await self.history.count_history(args.get("filter"))
        raise ValueError(f"Invalid history read action: {action}")

    # ---------------------------------------------------------- certificates

    async def read_certificates(self, args: dict[str, Any]) -> Any:
        action = args.get("action") or "list"
        if action == "list":
            return await self.certificates.list_certificates(**_list_options(args))
        raise ValueError(f"Invalid certificate read action: {action}")

    async def write_certificates(self, args: dict[str, Any]) -> Any:
        action = args.get("action")
        if action == "create":
            return await self.certificates.create_certificate(
                args.get("name"), args.get("data"), args.get("storeType")
            )
        raise ValueError(f"Invalid certificate write action: {action}")

    # ------------------------------------------------------------ workspaces

    async def read_workspaces(self, args: dict[str, Any]) -> Any:
        action = args.get("action") or "list"
        if action == "list":
            return await self.workspaces.list_workspaces(**_list_options(args))
        if action == "count":
            return await self.workspaces.count_workspaces(args.get("filter"))
        if action == "get":
            if args.get("id"):
                return await self.workspaces.get_workspace_by_id(args["id"])
            if args.get("name"):
                return await self.workspaces.get_workspace_by_name(args["name"])
            raise ValueError("Either workspace name or ID is required for get action")
        if action == "property":
            return await self.workspaces.get_workspace_property(args.get("name"), args.get("propertyName"))
        raise ValueError(f"Invalid workspace read action: {action}")

    async def write_workspaces(self, args: dict[str, Any]) -> Any:
        action = args.get("action")
        if action == "create":
            return await self.workspaces.create_workspace(args.get("name"))
        if action == "update":
            if not args.get("newName"):
                raise ValueError("New workspace name is required for update")
            if args.get("id"):
                return await self.workspaces.update_workspace_by_id(args["id"], args["newName"])
            if args.get("name"):
                return await self.workspaces.update_workspace(args["name"], args["newName"])
            raise ValueError("Either workspace name or ID is required for update action")
        if action == "delete":
            if args.get("id"):
                return await self.workspaces.delete_workspace_by_id(args["id"])
            if args.get("name"):
                return await self.workspaces.delete_workspace(args["name"])
            raise ValueError("Either workspace name or ID is required for delete action")
        raise ValueError(f"Invalid workspace write action: {action}")


def _api_error_message(response: httpx.Response) -> str | None:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return None


def describe_error(error: Exception) -> str:
    """Build the user-facing text for a failed tool call."""
    text = str(error).splitlines()[0] if str(error) else type(error).__name__
    message = f"Tool execution failed: {text}"
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 400:
            message += " (Bad Request - check parameter format)"
        elif status == 404:
            message += " (Not Found - resource doesn't exist)"
        elif status == 401:
            message += " (Unauthorized - check authentication)"
        api_message = _api_error_message(error.response)
        if api_message:
            message += f" - API Error: {api_message}"
    return message


# Create the MCP server
server = Server("cdata-sync-mcp-server", version=__version__)

_handler: SyncToolHandler | None = None


def get_handler() -> SyncToolHandler:
    global _handler
    if _handler is None:
        _handler = SyncToolHandler(SyncConfig.from_env())
    return _handler


def set_handler(handler: SyncToolHandler) -> None:
    global _handler
    _handler = handler


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List available CData Sync tools."""
    return get_all_tools()


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Run a tool and return its result as pretty-printed JSON."""
    try:
        result = await get_handler().call(name, arguments or {})
    except Exception as e:
        logger.warning("Tool %s failed: %s", name, e)
        raise McpError(ErrorData(code=INTERNAL_ERROR, message=describe_error(e))) from e
    return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]


async def run_stdio() -> None:
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


async def run_http(settings: ServerSettings) -> None:
    transport = StreamableHttpTransport(
        path=settings.http_path, cors=settings.http_cors, timeout=settings.http_timeout
    )
    async with transport.connect() as (read_stream, write_stream):
        async with anyio.create_task_group() as tg:
            tg.start_soon(
                partial(
                    server.run,
                    read_stream,
                    write_stream,
                    server.create_initialization_options(),
                    stateless=True,
                )
            )
            try:
                await transport.serve(settings.http_host, settings.http_port)
            finally:
                transport.close()
                tg.cancel_scope.cancel()


async def run_events(events: EventBroadcaster, port: int) -> None:
    try:
        await events.serve(port)
    except OSError as e:
        logger.warning("Debug event server could not start on port %s: %s", port, e)


async def main(settings: ServerSettings | None = None) -> None:
    """Run the MCP server in the configured transport mode."""
    settings = settings or ServerSettings.from_env()
    mode = settings.transport_mode

    events = EventBroadcaster() if settings.sse_port and mode in ("stdio", "both") else None
    set_handler(SyncToolHandler(settings.sync, events))

    logger.info(
        "Starting CData Sync MCP server %s (transport: %s, base URL: %s, auth: %s, workspace: %s)",
        __version__,
        mode,
        settings.sync.base_url,
        settings.sync.auth_type,
        settings.sync.workspace,
    )

    async with anyio.create_task_group() as tg:
        if events is not None:
            tg.start_soon(run_events, events, settings.sse_port)
        if mode == "stdio":
            await run_stdio()
        elif mode == "http":
            await run_http(settings)
        else:
            tg.start_soon(run_http, settings)
            await run_stdio()
        if events is not None:
            events.close()
        tg.cancel_scope.cancel()


def run() -> None:
    settings = ServerSettings.from_env()
    configure_logging(settings.log_level)
    try:
        asyncio.run(main(settings))
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    run()
