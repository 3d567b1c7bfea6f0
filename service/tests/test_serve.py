"""
Test cases for the HTTP endpoints.
"""

from pathlib import Path

import pytest
import yaml
from fastapi.testclient import TestClient

from route_mapping.serve import app

ROUTE_YAML = (Path(__file__).parent / "files" / "tsquery_route.yaml").read_text(encoding="utf-8")


@pytest.fixture
def client():
    # the lifespan hands every client a fresh registry
    with TestClient(app) as client:
        yield client


def create(client, target="Document/Id", route_id="r1", **extra):
    body = {"routeId": route_id, "sourcePath": "source.Req.Id", "targetPath": target, **extra}
    return client.post("/mappings", json=body)


def test_ping(client):
    assert client.get("/").json() == "pong"


class TestMappingEndpoints:
    def test_create(self, client):
        response = create(client, transform="concat( 'a' , Id )")

        assert response.status_code == 201
        rule = response.json()
        assert rule["id"] is not None
        assert rule["routeId"] == "r1"
        assert rule["direction"] == "REQUEST"
        assert rule["transform"] == "concat('a',Id)"

    def test_create_conflict(self, client):
        create(client, "A")
        response = create(client, "A")

        assert response.status_code == 409
        assert "already mapped" in response.json()["error"]

    def test_create_invalid(self, client):
        response = create(client, "A", sourcePath="a..b")

        assert response.status_code == 400
        issues = response.json()["issues"]
        assert issues[0]["location"] == "rule.sourcePath"
        assert issues[0]["severity"] == "error"

    def test_create_missing_field(self, client):
        response = client.post("/mappings", json={"routeId": "r1"})
        assert response.status_code == 422

    def test_get(self, client):
        rule_id = create(client).json()["id"]

        response = client.get(f"/mappings/{rule_id}")

        assert response.status_code == 200
        assert response.json()["targetPath"] == "Document/Id"

    def test_get_unknown(self, client):
        response = client.get("/mappings/4711")

        assert response.status_code == 404
        assert "not found" in response.json()["error"]

    def test_list(self, client):
        create(client, "A")
        create(client, "B", route_id="r2")

        assert [r["targetPath"] for r in client.get("/mappings").json()] == ["A", "B"]
        assert [r["targetPath"] for r in client.get("/mappings", params={"route_id": "r2"}).json()] == ["B"]

    def test_update(self, client):
        rule_id = create(client, "A", defaultValue="x").json()["id"]

        response = client.put(f"/mappings/{rule_id}", json={"targetPath": "B", "defaultValue": None})

        assert response.status_code == 200
        assert response.json()["targetPath"] == "B"
        assert response.json()["defaultValue"] is None

    def test_update_errors(self, client):
        first = create(client, "A").json()["id"]
        create(client, "B")

        assert client.put("/mappings/4711", json={"targetPath": "C"}).status_code == 404
        assert client.put(f"/mappings/{first}", json={"targetPath": "B"}).status_code == 409
        assert client.put(f"/mappings/{first}", json={"transform": "now("}).status_code == 400

    def test_delete(self, client):
        rule_id = create(client).json()["id"]

        assert client.delete(f"/mappings/{rule_id}").status_code == 204
        assert client.delete(f"/mappings/{rule_id}").status_code == 404
        assert client.get("/mappings").json() == []


class TestYamlEndpoints:
    def test_generate(self, client):
        body = {
            "routeId": "r1",
            "mode": "ACTIVE",
            "endpoint": "http://core",
            "requestMappings": [{"sourcePath": "constant:00", "targetPath": "Code"}],
        }

        response = client.post("/mappings/generate-yaml", json=body)

        assert response.status_code == 200
        doc = yaml.safe_load(response.json()["yaml"])
        assert doc["routeId"] == "r1"
        assert doc["requestMappings"] == [{"sourcePath": "constant:00", "targetPath": "Code"}]

    def test_generate_invalid_transform(self, client):
        body = {
            "routeId": "r1",
            "requestMappings": [{"sourcePath": "a", "targetPath": "b", "transform": "concat("}],
        }

        response = client.post("/mappings/generate-yaml", json=body)

        assert response.status_code == 400
        assert response.json()["offset"] == 7
        assert "requestMappings[0].transform" in response.json()["error"]

    def test_validate(self, client):
        response = client.post("/mappings/validate-yaml", json={"yaml": ROUTE_YAML})

        assert response.status_code == 200
        assert response.json()["valid"]
        assert response.json()["message"] == "Configuration is valid"

    def test_validate_reports_problems(self, client):
        response = client.post("/mappings/validate-yaml", json={"yaml": "routeId: r1\nmode: ACTIVE\n"})

        assert response.status_code == 200
        report = response.json()
        assert not report["valid"]
        assert report["issues"][0]["location"] == "endpoint"

    def test_validate_empty(self, client):
        response = client.post("/mappings/validate-yaml", json={"yaml": ""})

        assert response.status_code == 400
        assert response.json()["message"] == "YAML content is required"

    def test_parse(self, client):
        response = client.post("/mappings/parse-yaml", json={"yaml": ROUTE_YAML})

        assert response.status_code == 200
        config = response.json()
        assert config["routeId"] == "tsquery-single"
        assert len(config["requestMappings"]) == 3
        assert config["responseMappings"][0]["defaultValue"] == "99"
        assert config["namespace"]["prefix"] == ""

    def test_parse_invalid(self, client):
        response = client.post("/mappings/parse-yaml", json={"yaml": "- a\n"})

        assert response.status_code == 400
        assert "must be a mapping" in response.json()["error"]

    def test_download(self, client):
        response = client.post("/mappings/download-yaml", json={"routeId": "tsquery"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/x-yaml")
        assert response.headers["content-disposition"] == 'attachment; filename="tsquery.yaml"'
        assert yaml.safe_load(response.text)["routeId"] == "tsquery"

    def test_preview_transform(self, client):
        body = {"transform": "mapStatusToResponseCode( GrpSts )", "record": {"GrpSts": "ACSC"}}

        response = client.post("/mappings/preview-transform", json=body)

        assert response.status_code == 200
        assert response.json() == {"transform": "mapStatusToResponseCode(GrpSts)", "value": "25"}

    def test_preview_transform_default(self, client):
        body = {"transform": "mapStatusToResponseCode(GrpSts)", "defaultValue": "99"}

        response = client.post("/mappings/preview-transform", json=body)

        assert response.json()["value"] == "99"

    def test_preview_transform_errors(self, client):
        broken = client.post("/mappings/preview-transform", json={"transform": "concat('a',)"})
        assert broken.status_code == 400
        assert broken.json()["offset"] == 11

        missing = client.post(
            "/mappings/preview-transform",
            json={"transform": "substring(SessionID, -15)", "required": True},
        )
        assert missing.status_code == 400
        assert "SessionID" in missing.json()["error"]

    def test_preview_transform_date_out_of_range(self, client):
        body = {"transform": "subtractDays(now(), 99999999)"}

        response = client.post("/mappings/preview-transform", json=body)

        assert response.status_code == 400
        assert "subtractDays" in response.json()["error"]

        body["defaultValue"] = "x"
        assert client.post("/mappings/preview-transform", json=body).json()["value"] == "x"


class TestRouteEndpoints:
    def test_route_yaml(self, client):
        client.put("/routes/r1", json={"routeId": "r1", "name": "Route one", "mode": "PASSIVE"})
        create(client, "A")

        response = client.get("/routes/r1/yaml")

        assert response.status_code == 200
        doc = yaml.safe_load(response.json()["yaml"])
        assert doc["name"] == "Route one"
        assert [r["targetPath"] for r in doc["requestMappings"]] == ["A"]

    def test_route_unknown(self, client):
        assert client.get("/routes/nope/yaml").status_code == 404
        assert client.get("/routes/nope/mapping-set").status_code == 404

    def test_put_route_invalid_mode(self, client):
        response = client.put("/routes/r1", json={"routeId": "r1", "mode": "sometimes"})
        assert response.status_code == 400

    def test_import(self, client):
        response = client.post("/routes/tsquery-single/import", json={"yaml": ROUTE_YAML})

        assert response.status_code == 200
        assert len(response.json()["requestMappings"]) == 3

        mapping_set = client.get("/routes/tsquery-single/mapping-set").json()
        assert mapping_set["mode"] == "ACTIVE"
        assert len(client.get("/mappings", params={"route_id": "tsquery-single"}).json()) == 5

    def test_import_route_mismatch(self, client):
        response = client.post("/routes/other/import", json={"yaml": ROUTE_YAML})

        assert response.status_code == 400
        assert "does not match" in response.json()["error"]
        assert client.get("/routes/other/yaml").status_code == 404

    def test_import_invalid(self, client):
        response = client.post("/routes/r1/import", json={"yaml": "routeId: r1\nmode: ACTIVE\n"})

        assert response.status_code == 400
        assert response.json()["issues"][0]["location"] == "endpoint"
