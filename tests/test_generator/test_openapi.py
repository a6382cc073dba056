"""Tests for specforge.generator.openapi -- NormalizedApi to OpenAPI 3.1."""

from __future__ import annotations

import json

from specforge.generator.openapi import build_openapi, operation_id, render_openapi
from specforge.models import Endpoint, HTTPMethod, NormalizedApi
from specforge.normalizer import normalize
from specforge.parser import parse_api


def _document(text: str) -> dict:
    return build_openapi(normalize(parse_api(text, "api.toml"), title="test"))


class TestDocumentShape:
    def test_header(self, user_api: NormalizedApi) -> None:
        doc = build_openapi(user_api)
        assert doc["openapi"] == "3.1.0"
        assert doc["info"] == {"title": "shop", "version": "1.0.0", "description": "User accounts"}
        assert doc["tags"] == [{"name": "Users", "description": "User accounts"}]

    def test_header_without_description(self) -> None:
        doc = _document('[[endpoints]]\npath = "/a"\nmethod = "GET"\n')
        assert doc["info"] == {"title": "test", "version": "0.1.0"}

    def test_path_order_independent_of_schema_order(self) -> None:
        endpoints = (
            '[[endpoints]]\npath = "/order/new"\nmethod = "POST"\nbody = "order"\n\n'
            '[[endpoints]]\npath = "/item/list"\nmethod = "GET"\n\n'
            '[[endpoints]]\npath = "/cart/{cart_id}/view"\nmethod = "GET"\n\n'
        )
        order = '[schemas.order]\nitem = "item"\ncart = "cart"\n\n'
        item = '[schemas.item]\nsku = "string"\n\n'
        cart = '[schemas.cart]\nitems = { type = "array", items = "item" }\n\n'

        first = _document(endpoints + order + item + cart)
        second = _document(endpoints + cart + item + order)

        expected = ["/order/new", "/item/list", "/cart/{cart_id}/view"]
        assert list(first["paths"]) == expected
        assert list(second["paths"]) == expected
        assert first["paths"] == second["paths"]
        assert list(first["components"]["schemas"]) == ["order", "item", "cart"]
        assert list(second["components"]["schemas"]) == ["cart", "item", "order"]

    def test_paths_in_declaration_order(self, user_api: NormalizedApi) -> None:
        assert list(build_openapi(user_api)["paths"]) == [
            "/user/new",
            "/user/{user_id}/delete",
            "/user/{user_id}/update",
            "/user/{user_id}/view",
            "/user/list",
            "/user/import",
            "/user/export",
        ]

    def test_schemas_in_declaration_order(self, user_api: NormalizedApi) -> None:
        schemas = build_openapi(user_api)["components"]["schemas"]
        assert list(schemas) == ["userId", "newUser", "userInfo", "userData"]

    def test_methods_grouped_under_first_path(self) -> None:
        doc = _document(
            '[[endpoints]]\npath = "/a"\nmethod = "GET"\n\n'
            '[[endpoints]]\npath = "/b"\nmethod = "GET"\n\n'
            '[[endpoints]]\npath = "/a"\nmethod = "DELETE"\n'
        )
        assert list(doc["paths"]) == ["/a", "/b"]
        assert list(doc["paths"]["/a"]) == ["get", "delete"]


class TestScenarios:
    def test_new_user_schema(self) -> None:
        doc = _document(
            '[schemas.newUser]\n'
            'type = "object"\n'
            'required = ["name", "roles", "account", "password"]\n'
            'name = "string"\n'
            'roles = { type = "array", items = "string" }\n'
            'account = "string"\n'
            'password = { type = "string", format = "password" }\n'
            'tags = { type = "array", items = { type = "string", format = "uuid" } }\n'
        )
        schema = doc["components"]["schemas"]["newUser"]
        assert schema["type"] == "object"
        assert schema["required"] == ["name", "roles", "account", "password"]
        assert schema["properties"]["tags"] == {
            "type": "array",
            "items": {"type": "string", "format": "uuid"},
        }

    def test_user_list_query_parameters(self) -> None:
        doc = _document(
            '[[endpoints]]\npath = "/user/list"\nmethod = "GET"\n'
            '[endpoints.query]\nroles = { type = "string" }\ntags = { type = "string" }\n'
        )
        params = doc["paths"]["/user/list"]["get"]["parameters"]
        assert [(p["name"], p["in"]) for p in params] == [("roles", "query"), ("tags", "query")]
        assert all(p["schema"] == {"type": "string"} for p in params)
        assert all(p["required"] is False for p in params)


class TestOperations:
    def test_request_body_reference(self, user_api: NormalizedApi) -> None:
        op = build_openapi(user_api)["paths"]["/user/new"]["post"]
        assert op["requestBody"] == {
            "required": True,
            "content": {"application/json": {"schema": {"$ref": "#/components/schemas/newUser"}}},
        }
        assert op["responses"] == {"200": {"description": "Successful response"}}
        assert op["tags"] == ["Users"]
        assert op["summary"] == "Creates a new user"

    def test_path_params_before_query(self) -> None:
        doc = _document(
            '[[endpoints]]\npath = "/user/{user_id}/posts"\nmethod = "GET"\n'
            'query = { page = "integer" }\n'
        )
        params = doc["paths"]["/user/{user_id}/posts"]["get"]["parameters"]
        assert params == [
            {"name": "user_id", "in": "path", "required": True, "schema": {"type": "string"}},
            {"name": "page", "in": "query", "required": False, "schema": {"type": "integer"}},
        ]

    def test_parameter_schema_reference(self) -> None:
        doc = _document(
            '[[endpoints]]\npath = "/user/view"\nmethod = "GET"\n'
            'query = { id = { type = "userId", required = true } }\n\n'
            '[schemas.userId]\ntype = "string"\nformat = "uuid"\n'
        )
        params = doc["paths"]["/user/view"]["get"]["parameters"]
        assert params == [
            {
                "name": "id",
                "in": "query",
                "required": True,
                "schema": {"$ref": "#/components/schemas/userId"},
            }
        ]

    def test_enum_default_and_description(self, user_api: NormalizedApi) -> None:
        params = build_openapi(user_api)["paths"]["/user/export"]["get"]["parameters"]
        assert params[0] == {
            "name": "format",
            "in": "query",
            "description": "File format",
            "required": False,
            "schema": {"type": "string", "enum": ["csv", "json", "jsonlines"], "default": "json"},
        }

    def test_empty_description_omitted(self, user_api: NormalizedApi) -> None:
        op = build_openapi(user_api)["paths"]["/user/new"]["post"]
        assert "description" not in op

    def test_deprecated_flag(self) -> None:
        doc = _document('[[endpoints]]\npath = "/old"\nmethod = "GET"\ndeprecated = true\n')
        assert doc["paths"]["/old"]["get"]["deprecated"] is True

    def test_operation_ids(self) -> None:
        endpoint = Endpoint(path="/user/{user_id}/update", method=HTTPMethod.POST)
        assert operation_id(endpoint) == "post_user_by_user_id_update"
        assert operation_id(Endpoint(path="/userGroups/list-all", method=HTTPMethod.GET)) == (
            "get_user_groups_list_all"
        )
        assert operation_id(Endpoint(path="/", method=HTTPMethod.GET)) == "get"


class TestSchemas:
    def test_primitive_schema(self, user_api: NormalizedApi) -> None:
        schema = build_openapi(user_api)["components"]["schemas"]["userId"]
        assert schema == {"type": "string", "format": "uuid", "description": "User ID"}

    def test_array_schema_items(self, user_api: NormalizedApi) -> None:
        schema = build_openapi(user_api)["components"]["schemas"]["userData"]
        assert schema["type"] == "array"
        items = schema["items"]
        assert items["type"] == "object"
        assert items["required"] == ["name", "roles", "account", "password"]
        assert list(items["properties"]) == ["name", "roles", "account", "password", "tags"]

    def test_field_annotations(self, user_api: NormalizedApi) -> None:
        props = build_openapi(user_api)["components"]["schemas"]["newUser"]["properties"]
        assert props["roles"] == {
            "type": "array",
            "items": {"type": "string"},
            "description": "User roles",
            "example": ["admin"],
        }
        assert props["password"]["format"] == "password"

    def test_reference_field(self) -> None:
        doc = _document('[schemas.a]\nb = { schema = "b", description = "The b" }\n\n[schemas.b]\nx = "number"\n')
        assert doc["components"]["schemas"]["a"]["properties"]["b"] == {
            "$ref": "#/components/schemas/b",
            "description": "The b",
        }

    def test_unknown_format_passes_through(self) -> None:
        doc = _document('[schemas.a]\nwhen = { type = "string", format = "x-custom" }\n')
        assert doc["components"]["schemas"]["a"]["properties"]["when"]["format"] == "x-custom"

    def test_object_without_required(self, user_api: NormalizedApi) -> None:
        schema = build_openapi(user_api)["components"]["schemas"]["userInfo"]
        assert "required" not in schema


class TestRender:
    def test_stable_output(self, user_toml: str) -> None:
        first = render_openapi(build_openapi(normalize(parse_api(user_toml, "user.toml"))))
        second = render_openapi(build_openapi(normalize(parse_api(user_toml, "user.toml"))))
        assert first == second

    def test_format(self, user_api: NormalizedApi) -> None:
        text = render_openapi(build_openapi(user_api))
        assert text.endswith("}\n")
        assert text.startswith('{\n  "openapi": "3.1.0"')
        assert json.loads(text)["info"]["title"] == "shop"

    def test_non_ascii_kept(self) -> None:
        text = render_openapi({"info": {"title": "Café"}})
        assert "Café" in text
