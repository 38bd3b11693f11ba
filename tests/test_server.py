"""Tests for the CData Sync MCP server tool surface."""

import json

import httpx
import pytest
from mcp.shared.exceptions import McpError

import cdata_sync_mcp.server as server_module
from cdata_sync_mcp.events import EventBroadcaster
from cdata_sync_mcp.server import SyncToolHandler, call_tool, describe_error, list_tools
from cdata_sync_mcp.tools import TOOLS

from conftest import BASE_URL


@pytest.fixture
def events():
    return EventBroadcaster()


@pytest.fixture
def handler(sync_config, events, monkeypatch):
    handler = SyncToolHandler(sync_config, events=events)
    monkeypatch.setattr(server_module, "_handler", handler)
    return handler


def drain(queue):
    received = []
    while not queue.empty():
        received.append(queue.get_nowait())
    return received


def result_of(contents):
    assert len(contents) == 1
    return json.loads(contents[0].text)


class TestListTools:
    """Tests for the advertised tools."""

    @pytest.mark.asyncio
    async def test_all_tools_are_listed(self):
        """Test that every registered tool is advertised."""
        tools = await list_tools()

        assert len(tools) == 24
        assert {tool.name for tool in tools} == set(TOOLS)

    @pytest.mark.asyncio
    async def test_schemas_are_objects(self):
        tools = await list_tools()

        for tool in tools:
            assert tool.inputSchema["type"] == "object"
            for required in tool.inputSchema.get("required", []):
                assert required in tool.inputSchema["properties"]

    @pytest.mark.asyncio
    async def test_workspace_override_on_all_but_configuration(self):
        tools = {tool.name: tool for tool in await list_tools()}

        assert "workspaceId" not in tools["configure_sync_server"].inputSchema["properties"]
        for name, tool in tools.items():
            if name != "configure_sync_server":
                assert "workspaceId" in tool.inputSchema["properties"], name

    @pytest.mark.asyncio
    async def test_write_tools_carry_a_warning(self):
        tools = await list_tools()

        for tool in tools:
            if tool.name.startswith(("write_", "execute_")) or tool.name == "cancel_job":
                assert "⚠️" in tool.description, tool.name

    @pytest.mark.asyncio
    async def test_read_tools_advertise_default_action(self):
        tools = {tool.name: tool for tool in await list_tools()}

        assert tools["read_tasks"].inputSchema["properties"]["action"]["default"] == "get"
        assert tools["read_jobs"].inputSchema["properties"]["action"]["enum"] == [
            "list", "count", "get", "status", "history", "logs",
        ]

    @pytest.mark.asyncio
    async def test_typed_parameters(self):
        tools = {tool.name: tool for tool in await list_tools()}

        jobs = tools["write_jobs"].inputSchema["properties"]
        assert jobs["type"]["type"] == "integer"
        assert jobs["queries"]["type"] == "array"
        assert tools["write_transformations"].inputSchema["properties"]["type"] == {
            "type": "string",
            "description": "dbt project type (update only)",
        }
        assert tools["read_jobs"].inputSchema["properties"]["top"]["type"] == "integer"


class TestCallTool:
    """Tests for tool dispatch."""

    @pytest.mark.asyncio
    async def test_default_action_lists(self, handler, httpx_mock):
        """Test that read tools fall back to their default action."""
        httpx_mock.add_response(url=f"{BASE_URL}/connections", json={"value": [{"Name": "Prod"}]})

        contents = await call_tool("read_connections", {})

        assert contents[0].type == "text"
        assert contents[0].text == json.dumps([{"Name": "Prod"}], indent=2)

    @pytest.mark.asyncio
    async def test_read_tasks_defaults_to_get(self, handler, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/tasks('Daily')", json={"value": [{"TaskId": "9007199254740993"}]})

        result = result_of(await call_tool("read_tasks", {"jobName": "Daily"}))

        assert result == {"value": [{"TaskId": "9007199254740993"}]}

    @pytest.mark.asyncio
    async def test_count_action(self, handler, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/jobs/$count", text="12")

        assert result_of(await call_tool("read_jobs", {"action": "count"})) == 12

    @pytest.mark.asyncio
    async def test_list_options_are_passed(self, handler, httpx_mock):
        httpx_mock.add_response(
            url=f"{BASE_URL}/history?$filter=Status eq 'Failed'&$orderby=RunStartDate desc&$top=3",
            json={"value": []},
        )

        result = result_of(
            await call_tool(
                "read_history",
                {"filter": "Status eq 'Failed'", "orderby": "RunStartDate desc", "top": 3},
            )
        )

        assert result == []

    @pytest.mark.asyncio
    async def test_unknown_tool(self, handler):
        with pytest.raises(McpError) as exc_info:
            await call_tool("drop_everything", {})

        assert exc_info.value.error.message == "Tool execution failed: Unknown tool: drop_everything"

    @pytest.mark.asyncio
    async def test_missing_parameters(self, handler, httpx_mock):
        """Test that write tools are checked before any request is made."""
        with pytest.raises(McpError, match="Missing required parameters: connectionString"):
            await call_tool("write_connections", {"action": "create", "name": "Prod", "providerName": "CData MySQL"})

        assert httpx_mock.requests == []

    @pytest.mark.asyncio
    async def test_invalid_action(self, handler):
        with pytest.raises(McpError, match="Invalid history read action: purge"):
            await call_tool("read_history", {"action": "purge"})

    @pytest.mark.asyncio
    async def test_api_errors_are_described(self, handler, httpx_mock):
        httpx_mock.add_response(
            url=f"{BASE_URL}/connections('Prod')",
            method="DELETE",
            status_code=400,
            json={"error": {"message": "Connection is used by job 'Daily'"}},
        )

        with pytest.raises(McpError) as exc_info:
            await call_tool("write_connections", {"action": "delete", "name": "Prod"})

        message = exc_info.value.error.message
        assert message.startswith("Tool execution failed: ")
        assert "(Bad Request - check parameter format)" in message
        assert message.endswith(" - API Error: Connection is used by job 'Daily'")

    @pytest.mark.asyncio
    async def test_single_user_in_array_creates_one_user(self, handler, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/users", method="POST", json={"User": "jdoe"})

        await call_tool(
            "write_users",
            {"action": "create", "users": [{"user": "jdoe", "password": "Password123", "roles": "cdata_standard"}]},
        )

        assert httpx_mock.last_body() == {"User": "jdoe", "Password": "Password123", "Roles": "cdata_standard"}

    @pytest.mark.asyncio
    async def test_workspace_update_by_id(self, handler, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/workspaces", method="PUT", json={})

        await call_tool("write_workspaces", {"action": "update", "id": "ws-1", "newName": "Revenue"})

        assert httpx_mock.last_body() == {"Id": "ws-1", "Name": "Revenue"}

    @pytest.mark.asyncio
    async def test_workspace_get_needs_id_or_name(self, handler):
        with pytest.raises(McpError, match="Either workspace name or ID is required"):
            await call_tool("read_workspaces", {"action": "get"})


class TestWorkspaceOverride:
    """Tests for per-call workspace selection."""

    @pytest.mark.asyncio
    async def test_override_is_validated_and_applied(self, handler, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/workspaces", method="GET", json={"Id": "finance"})
        httpx_mock.add_response(url=f"{BASE_URL}/connections?workspace=finance", json={"value": []})

        await call_tool("read_connections", {"workspaceId": "finance"})

        assert httpx_mock.requests[0].url.path.endswith("/workspaces")
        assert json.loads(httpx_mock.requests[0].content) == {"Id": "finance"}
        assert httpx_mock.last_request.url.params["workspace"] == "finance"
        assert handler.client.workspace == "default"

    @pytest.mark.asyncio
    async def test_unknown_workspace(self, handler, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/workspaces", method="GET", status_code=404)

        with pytest.raises(McpError, match="Workspace with ID 'ghost' not found"):
            await call_tool("read_jobs", {"workspaceId": "ghost"})

        assert len(httpx_mock.requests) == 1

    @pytest.mark.asyncio
    async def test_empty_lookup_result_means_unknown(self, handler, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/workspaces", method="GET", json={"value": []})

        with pytest.raises(McpError, match="read_workspaces"):
            await call_tool("read_jobs", {"workspaceId": "ghost"})


class TestConfiguration:
    """Tests for configure_sync_server."""

    @pytest.mark.asyncio
    async def test_get(self, handler):
        result = result_of(await call_tool("configure_sync_server", {"action": "get"}))

        assert result["baseUrl"] == BASE_URL
        assert result["authType"] == "token"
        assert "authToken" not in result

    @pytest.mark.asyncio
    async def test_update_reconnects_services(self, handler, httpx_mock):
        """Test that later calls go to the newly configured server."""
        httpx_mock.add_response(url="http://other.test:8181/api.rsc/connections/$count", text="2")
        httpx_mock.add_response(url="http://other.test:8181/api.rsc/jobs", json={"value": [{"JobName": "Daily"}]})

        result = result_of(
            await call_tool("configure_sync_server", {"action": "update", "baseUrl": "http://other.test:8181"})
        )
        jobs = result_of(await call_tool("read_jobs", {}))

        assert result["success"] is True
        assert jobs == [{"JobName": "Daily"}]
        assert httpx_mock.last_request.url.host == "other.test"

    @pytest.mark.asyncio
    async def test_update_without_changes_is_rejected(self, handler):
        with pytest.raises(McpError, match="Missing required parameters"):
            await call_tool("configure_sync_server", {"action": "update"})


class TestEvents:
    """Tests for tool lifecycle events."""

    @pytest.mark.asyncio
    async def test_success_events(self, handler, events, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/jobs/$count", text="1")
        _, queue = events.subscribe()

        await call_tool("read_jobs", {"action": "count"})

        names = [name for name, _ in drain(queue)]
        assert names == ["connected", "tool_execution", "tool_success"]

    @pytest.mark.asyncio
    async def test_secrets_are_redacted(self, handler, events, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/connections", method="POST", json={})
        _, queue = events.subscribe()

        await call_tool(
            "write_connections",
            {"action": "create", "name": "Prod", "providerName": "CData MySQL", "connectionString": "Password=hunter2;"},
        )

        execution = dict(drain(queue))["tool_execution"]
        assert execution["tool"] == "write_connections"
        assert execution["args"]["connectionString"] == "***"
        assert "timestamp" in execution

    @pytest.mark.asyncio
    async def test_error_event(self, handler, events, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/jobs('Missing')", status_code=404)
        _, queue = events.subscribe()

        with pytest.raises(McpError):
            await call_tool("read_jobs", {"action": "get", "jobName": "Missing"})

        received = dict(drain(queue))
        assert received["tool_error"]["error"] == "Job 'Missing' not found"
        assert "tool_success" not in received

    @pytest.mark.asyncio
    async def test_job_executed_event(self, handler, events, httpx_mock):
        httpx_mock.add_response(url=f"{BASE_URL}/executeJob", json={"Status": "Success"})
        _, queue = events.subscribe()

        await call_tool("execute_job", {"jobName": "Daily"})

        received = dict(drain(queue))
        assert received["job_executed"]["jobName"] == "Daily"
        assert received["job_executed"]["result"] == [{"Status": "Success"}]

    @pytest.mark.asyncio
    async def test_config_events(self, handler, events):
        _, queue = events.subscribe()

        await call_tool("configure_sync_server", {"action": "update", "clearAuth": True, "baseUrl": ""})

        names = [name for name, _ in drain(queue)]
        assert "config_changed" in names
        assert "config_updated" in names


class TestDescribeError:
    """Tests for tool failure messages."""

    def _status_error(self, status, payload=None):
        request = httpx.Request("GET", f"{BASE_URL}/jobs")
        response = httpx.Response(status, json=payload, request=request)
        return httpx.HTTPStatusError(f"Client error '{status}'\nmore detail", request=request, response=response)

    def test_plain_error(self):
        assert describe_error(ValueError("Job name is required")) == "Tool execution failed: Job name is required"

    def test_only_first_line_is_kept(self):
        assert describe_error(self._status_error(500)) == "Tool execution failed: Client error '500'"

    def test_not_found_suffix(self):
        assert describe_error(self._status_error(404)).endswith("(Not Found - resource doesn't exist)")

    def test_unauthorized_suffix_and_api_message(self):
        message = describe_error(self._status_error(401, {"error": {"message": "Invalid token"}}))

        assert "(Unauthorized - check authentication)" in message
        assert message.endswith(" - API Error: Invalid token")


def test_handler_is_created_from_environment(monkeypatch):
    monkeypatch.setattr(server_module, "_handler", None)
    monkeypatch.setenv("CDATA_BASE_URL", "http://env.test:8181/api.rsc")
    monkeypatch.setenv("CDATA_AUTH_TOKEN", "env-token-123456")

    handler = server_module.get_handler()

    assert handler.client.config.base_url == "http://env.test:8181/api.rsc"
    assert server_module.get_handler() is handler
