"""Tests for value coercion helpers."""

import pytest

from cdata_sync_mcp.converters import (
    extract_array,
    extract_count,
    is_valid_url,
    numbered_fields,
    parse_json_preserving_ids,
    stringify_ids,
    to_boolean,
    to_boolean_string,
    to_id_string,
    to_user_role,
)


class TestBooleans:
    """Tests for boolean coercion."""

    @pytest.mark.parametrize("value", [True, "true", "TRUE", " yes ", "1", 1, 2.5])
    def test_truthy_values(self, value):
        assert to_boolean(value) is True

    @pytest.mark.parametrize("value", [False, "false", "no", "0", "", 0, None])
    def test_falsy_values(self, value):
        assert to_boolean(value) is False

    def test_boolean_string_uses_lowercase_words(self):
        assert to_boolean_string(True) == "true"
        assert to_boolean_string("no") == "false"


class TestIdentifiers:
    """Tests for ID conversion."""

    def test_string_ids_pass_through(self):
        assert to_id_string("9007199254740993") == "9007199254740993"

    def test_integers_become_strings(self):
        assert to_id_string(42) == "42"

    def test_booleans_are_rejected(self):
        with pytest.raises(ValueError, match="Cannot convert"):
            to_id_string(True)

    def test_floats_are_rejected(self):
        with pytest.raises(ValueError):
            to_id_string(1.5)

    def test_large_ids_in_responses_are_kept_exact(self):
        body = '{"TaskId": 9007199254740993, "Index": 2, "Name": "t"}'

        result = parse_json_preserving_ids(body)

        assert result["TaskId"] == "9007199254740993"
        assert result["Index"] == 2

    def test_stringify_ids_only_touches_id_fields(self):
        result = stringify_ids({"TaskId": 12, "JobName": "Daily", "Timeout": 5})

        assert result == {"TaskId": "12", "JobName": "Daily", "Timeout": 5}


class TestUserRoles:
    """Tests for role normalization."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("admin", "cdata_admin"),
            ("Standard", "cdata_standard"),
            ("job creator", "cdata_job_creator"),
            ("job_operator", "cdata_support"),
            ("cdata_support", "cdata_support"),
        ],
    )
    def test_aliases_map_to_roles(self, value, expected):
        assert to_user_role(value) == expected

    def test_unknown_role_raises(self):
        with pytest.raises(ValueError, match="Invalid user role"):
            to_user_role("superuser")


class TestResponseShapes:
    """Tests for unwrapping API responses."""

    def test_numbered_fields(self):
        assert numbered_fields("Query", ["REPLICATE A", "REPLICATE B"]) == {
            "Query#1": "REPLICATE A",
            "Query#2": "REPLICATE B",
        }

    def test_extract_array_unwraps_odata_value(self):
        assert extract_array({"value": [{"Name": "a"}]}) == [{"Name": "a"}]

    def test_extract_array_wraps_single_record(self):
        assert extract_array({"Name": "a"}) == [{"Name": "a"}]

    def test_extract_array_keeps_lists(self):
        assert extract_array([1, 2]) == [1, 2]

    @pytest.mark.parametrize("response, expected", [(7, 7), ("12", 12), (" 3 ", 3), ({"@odata.count": 4}, 4)])
    def test_extract_count(self, response, expected):
        assert extract_count(response) == expected

    @pytest.mark.parametrize("response", [True, "many", {"value": []}, None])
    def test_extract_count_rejects_other_shapes(self, response):
        with pytest.raises(ValueError, match="Unable to extract count"):
            extract_count(response)


class TestUrls:
    """Tests for URL validation."""

    def test_http_and_https_are_valid(self):
        assert is_valid_url("http://localhost:8181/api.rsc")
        assert is_valid_url("https://sync.example.com")

    def test_other_schemes_are_invalid(self):
        assert not is_valid_url("ftp://example.com")
        assert not is_valid_url("not a url")
