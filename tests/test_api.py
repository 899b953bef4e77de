"""
End-to-end tests of the HTTP surface with a stub compute server behind it.
"""

import pytest
from fastapi.testclient import TestClient

from compute_stubs import COMPUTE_URL, FakeVMController, REFUSED, StubComputeServer
from geomcore.config.settings import Settings
from geomcore.main import create_app


def make_client(definitions_dir, stub, vm=None, env="development"):
    settings = Settings(
        compute_url=COMPUTE_URL,
        compute_key="test-key",
        definitions_dir=str(definitions_dir),
        env=env,
        enable_watchdog=False,
    )
    app = create_app(settings, compute_transport=stub.transport, vm_controller=vm or FakeVMController())
    return TestClient(app)


@pytest.fixture
def client(definitions_dir, stub, vm):
    with make_client(definitions_dir, stub, vm) as client:
        yield client


class TestDefinitionRoutes:
    """Listing and describing definitions."""

    def test_list_definitions(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == [{"name": "box.gh"}, {"name": "cylinder.ghx"}]

    def test_definition_info(self, client, stub):
        response = client.get("/definition/box.gh/info")

        assert response.status_code == 200
        body = response.json()
        assert body["description"] == "A parametric box"
        assert body["inputs"][0] == {
            "name": "width",
            "description": "Box width",
            "paramType": "Number",
            "default": 10.0,
            "minimum": 1.0,
            "maximum": 100.0,
        }
        assert body["outputs"] == ["RH_OUT:mesh"]
        assert body["view"] is True

        client.get("/definition/box.gh/info")
        assert stub.count("/io") == 1

    def test_definition_info_unknown(self, client):
        response = client.get("/definition/nope.gh/info")

        assert response.status_code == 404
        assert response.json()["message"] == "Definition not found: nope.gh"

    def test_definition_info_compute_error(self, client, stub):
        stub.io_outcomes.append((500, "Bad definition"))

        response = client.get("/definition/box.gh/info")

        assert response.status_code == 500
        assert "Bad definition" in response.json()["message"]

    def test_definition_description_by_name(self, client):
        response = client.get("/definition_description", params={"path": "cylinder.ghx"})

        assert response.status_code == 200
        assert response.json()["name"] == "cylinder.ghx"
        assert "inputs" in response.json()

    def test_describe_by_bare_name(self, client, stub):
        response = client.get("/box.gh")

        assert response.status_code == 200
        body = response.json()
        assert body["name"] == "box.gh"
        assert body["description"] == "A parametric box"
        assert [i["name"] for i in body["inputs"]] == ["width", "height"]
        assert body["outputs"] == ["RH_OUT:mesh"]

    def test_describe_by_bare_name_unknown(self, client):
        response = client.get("/nope.gh")

        assert response.status_code == 404
        assert response.json()["message"] == "Definition not found: nope.gh"

    def test_fixed_routes_win_over_bare_name(self, client):
        assert client.get("/version").json()["service"] == "geomcore"
        assert client.get("/healthcheck").text == "healthy"

    def test_definition_file_by_id(self, client):
        box_id = client.app.state.registry.lookup_by_name("box.gh").id

        response = client.get(f"/definition/{box_id}")

        assert response.status_code == 200
        assert response.content == b"GH-BINARY-BOX-v1"

    def test_definition_file_unknown_id(self, client):
        assert client.get("/definition/0123456789abcdef").status_code == 404


class TestSolveRoute:
    """POST /solve."""

    def test_solve_and_cache(self, client, stub):
        payload = {"definition": "box.gh", "inputs": {"width": 10, "height": 5}}

        first = client.post("/solve", json=payload)
        second = client.post("/solve", json={"definition": "box.gh", "inputs": {"height": 5, "width": 10}})

        assert first.status_code == 200
        assert first.json() == second.json()
        assert "pointer" not in first.json()
        assert stub.count("/grasshopper") == 1

    def test_solve_forwards_api_key(self, client, stub):
        client.post("/solve", json={"definition": "box.gh", "inputs": {}})

        assert stub.headers[-1]["RhinoComputeKey"] == "test-key"

    def test_solve_unknown_definition(self, client, stub):
        response = client.post("/solve", json={"definition": "nope.gh", "inputs": {}})

        assert response.status_code == 404
        body = response.json()
        assert body["message"] == "Definition not found: nope.gh"
        assert "stack" in body
        assert stub.count("/grasshopper") == 0

    def test_solve_logic_error_status_passthrough(self, client, stub):
        stub.solve_outcomes.append((500, "boom"))

        response = client.post("/solve", json={"definition": "box.gh", "inputs": {}})

        assert response.status_code == 500
        assert response.json()["message"] == "Compute Server returned 500: boom"

    def test_solve_unreachable_after_wake(self, client, stub, vm):
        stub.healthy = False
        stub.solve_outcomes.extend([REFUSED, REFUSED])

        response = client.post("/solve", json={"definition": "box.gh", "inputs": {}})

        assert response.status_code == 503
        assert stub.count("/grasshopper") == 2
        assert vm.start_calls == 1

    def test_solve_missing_definition_field(self, client):
        response = client.post("/solve", json={"inputs": {}})

        assert response.status_code == 422
        assert response.json()["message"].startswith("Invalid request")

    @pytest.mark.parametrize("literal", ["NaN", "Infinity", "-Infinity"])
    def test_solve_rejects_non_finite_numbers(self, client, stub, literal):
        response = client.post(
            "/solve",
            content='{"definition": "box.gh", "inputs": {"width": %s}}' % literal,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert "width" in response.json()["message"]
        assert stub.count("/grasshopper") == 0

    def test_solve_rejects_nested_non_finite_numbers(self, client, stub):
        response = client.post(
            "/solve",
            content='{"definition": "box.gh", "inputs": {"points": [1.0, NaN]}}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 422
        assert stub.count("/grasshopper") == 0

    def test_production_hides_stack(self, definitions_dir):
        with make_client(definitions_dir, StubComputeServer(), env="production") as client:
            response = client.post("/solve", json={"definition": "nope.gh", "inputs": {}})

        assert response.status_code == 404
        assert response.json() == {"message": "Definition not found: nope.gh"}


class TestHealthRoutes:
    """Health, wake-up and diagnostics."""

    def test_healthcheck_proxies_compute(self, client, stub):
        response = client.get("/healthcheck")

        assert response.status_code == 200
        assert response.text == "healthy"

    def test_healthcheck_passes_status_through(self, client, stub):
        stub.health_status = 500

        assert client.get("/healthcheck").status_code == 500

    def test_healthcheck_unreachable(self, client, stub):
        stub.healthy = False

        assert client.get("/healthcheck").status_code == 503

    def test_wakeup_running(self, client, vm):
        response = client.post("/wakeup")

        assert response.status_code == 200
        assert response.json() == {"status": "running"}
        assert vm.start_calls == 0

    def test_wakeup_starts_vm(self, client, stub, vm):
        stub.healthy = False

        response = client.post("/wakeup")

        assert response.json() == {"status": "starting"}
        assert vm.start_calls == 1

    def test_wakeup_capacity_error(self, client, stub, vm):
        from geomcore.errors import InfraCapacityError

        stub.healthy = False
        vm.start_error = InfraCapacityError()

        response = client.post("/wakeup")

        assert response.status_code == 503
        assert response.json()["message"] == "Spot VM capacity unavailable. Please try again later."

    def test_version(self, client):
        body = client.get("/version").json()

        assert body["service"] == "geomcore"
        assert body["compute_url"] == COMPUTE_URL
        assert body["cache"]["mode"] == "memory"
        assert body["infra_configured"] is False
        assert body["backend"]["wakeup_in_progress"] is False

    def test_files_lists_every_definition_file(self, client):
        response = client.get("/api/health/files")

        assert response.status_code == 200
        assert response.json() == ["box.gh", "box.ghx", "cylinder.ghx"]

    def test_check_auth_pass(self, client):
        assert client.get("/api/health/check-auth").json()["status"] == "pass"

    def test_check_auth_fail(self, client, stub):
        stub.health_status = 401

        body = client.get("/api/health/check-auth").json()

        assert body == {"status": "fail", "message": "Server returned 401"}

    def test_metrics(self, client):
        client.post("/solve", json={"definition": "box.gh", "inputs": {}})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "geomcore_solve_cache_total" in response.text


def test_lifespan_closes_vm_controller(definitions_dir):
    vm = FakeVMController()

    with make_client(definitions_dir, StubComputeServer(), vm=vm):
        pass

    assert vm.closed is True


def test_empty_definitions_dir(tmp_path):
    with make_client(tmp_path, StubComputeServer()) as client:
        assert client.get("/").json() == []
        (tmp_path / "late.gh").write_bytes(b"late")
        assert client.get("/").json() == [{"name": "late.gh"}]
