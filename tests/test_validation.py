"""Tests for required-parameter validation."""

import pytest

from cdata_sync_mcp.validation import should_validate, validate_required_parameters


class TestShouldValidate:
    """Tests for which tools are checked."""

    @pytest.mark.parametrize("tool", ["write_jobs", "execute_job", "execute_query", "configure_sync_server"])
    def test_write_and_execute_tools_are_checked(self, tool):
        assert should_validate(tool)

    @pytest.mark.parametrize("tool", ["read_jobs", "get_connection_tables", "cancel_job"])
    def test_other_tools_are_not(self, tool):
        assert not should_validate(tool)


class TestRequiredParameters:
    """Tests for per-action required parameters."""

    def test_complete_connection_create(self):
        valid, missing = validate_required_parameters(
            "write_connections",
            "create",
            {"name": "Prod", "providerName": "CData MySQL", "connectionString": "Server=db;"},
        )

        assert valid
        assert missing == []

    def test_missing_fields_are_listed_in_order(self):
        valid, missing = validate_required_parameters("write_jobs", "create", {"jobName": "Daily", "source": ""})

        assert not valid
        assert missing == ["source", "destination"]

    def test_unknown_tool_is_valid(self):
        assert validate_required_parameters("read_jobs", "list", {}) == (True, [])

    def test_task_create_needs_query_or_table(self):
        """Test that a task needs something to replicate."""
        valid, missing = validate_required_parameters("write_tasks", "create", {"jobName": "Daily"})

        assert not valid
        assert missing == ["query OR table"]

        assert validate_required_parameters("write_tasks", "create", {"jobName": "Daily", "table": "Lead"})[0]

    def test_task_delete_needs_task_id(self):
        _, missing = validate_required_parameters("write_tasks", "delete", {"jobName": "Daily"})

        assert missing == ["taskId"]


class TestExecuteTools:
    """Tests for execute_job and execute_query."""

    def test_execute_job_needs_a_job_reference(self):
        assert validate_required_parameters("execute_job", "execute", {}) == (False, ["jobName OR jobId"])

    def test_execute_job_accepts_job_id(self):
        valid, _ = validate_required_parameters(
            "execute_job", "execute", {"jobId": "0f8fad5b-d9cb-469f-a165-70867728950e"}
        )

        assert valid

    def test_execute_query_needs_queries_and_job(self):
        _, missing = validate_required_parameters("execute_query", "execute", {"queries": []})

        assert missing == ["jobName OR jobId"]

        _, missing = validate_required_parameters("execute_query", "execute", {"jobName": "Daily"})

        assert missing == ["queries"]


class TestUserCreation:
    """Tests for single and bulk user creation."""

    def test_single_user(self):
        valid, _ = validate_required_parameters(
            "write_users", "create", {"user": "jdoe", "password": "Password123", "roles": "cdata_standard"}
        )

        assert valid

    def test_nothing_given(self):
        _, missing = validate_required_parameters("write_users", "create", {})

        assert "user OR users array" in missing

    def test_bulk_users_replace_single_fields(self):
        valid, missing = validate_required_parameters(
            "write_users",
            "create",
            {"users": [{"user": "a", "password": "Password123", "roles": "cdata_admin"}]},
        )

        assert valid
        assert missing == []

    def test_bulk_users_report_entry_fields(self):
        _, missing = validate_required_parameters(
            "write_users",
            "create",
            {"users": [{"user": "a", "password": "Password123", "roles": "cdata_admin"}, {"user": "b"}]},
        )

        assert missing == ["users[1].password", "users[1].roles"]

    def test_update_needs_user(self):
        assert validate_required_parameters("write_users", "update", {"active": False}) == (False, ["user"])


class TestConfigureServer:
    """Tests for configure_sync_server updates."""

    def test_get_has_no_requirements(self):
        assert validate_required_parameters("configure_sync_server", "get", {}) == (True, [])

    def test_update_needs_a_change(self):
        valid, missing = validate_required_parameters("configure_sync_server", "update", {})

        assert not valid
        assert missing == ["baseUrl, authToken, username/password, clearAuth, OR workspace"]

    def test_username_alone_is_not_a_change(self):
        valid, _ = validate_required_parameters("configure_sync_server", "update", {"username": "admin"})

        assert not valid

    @pytest.mark.parametrize(
        "params",
        [
            {"baseUrl": "http://localhost:8181"},
            {"authToken": "token-abcdefgh"},
            {"username": "admin", "password": "Password123"},
            {"clearAuth": True},
            {"workspace": "finance"},
        ],
    )
    def test_any_change_is_enough(self, params):
        assert validate_required_parameters("configure_sync_server", "update", params)[0]
