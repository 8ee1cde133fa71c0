"""
Tests for the external backend client and its endpoint wrappers.
"""
import asyncio

import httpx
import pytest

from instructor_studio.backend_api import CohortsApi, ExerciseInstancesApi, ProgramsApi, ProofPointsApi
from instructor_studio.backend_client import ApiClientError, BackendClient
from instructor_studio.settings import Settings


def _run(make_backend_client, call, token="test-token"):
    async def run():
        client = make_backend_client(token)
        try:
            return await call(client)
        finally:
            await client.aclose()
    return asyncio.run(run())


class TestBaseUrl:
    def test_api_prefix_is_appended_once(self):
        assert Settings(INSTRUCTOR_API_URL="http://api.local/").api_base_url == "http://api.local/api/v1"
        assert Settings(INSTRUCTOR_API_URL="http://api.local/api/v1").api_base_url == "http://api.local/api/v1"


class TestRequests:
    def test_bearer_token_and_json(self, backend, make_backend_client):
        backend.on("GET", "/programs/p1", {"id": "p1"})
        assert _run(make_backend_client, lambda c: c.get("/programs/p1")) == {"id": "p1"}
        call = backend.calls[0]
        assert call["headers"]["authorization"] == "Bearer test-token"

    def test_query_params(self, backend, make_backend_client):
        backend.on("GET", "/programs", [])
        _run(make_backend_client, lambda c: ProgramsApi(c).list(estado="publicado"))
        assert backend.calls[0]["params"] == {"estado": "publicado"}

    def test_no_content(self, backend, make_backend_client):
        backend.on("DELETE", "/programs/p1", (204, None))
        assert _run(make_backend_client, lambda c: ProgramsApi(c).delete("p1")) is None

    def test_record_ids_stay_one_segment(self, backend, make_backend_client):
        backend.on("GET", "/proof-points/proofpoint:abc/exercises", [])
        _run(make_backend_client, lambda c: ExerciseInstancesApi(c).by_proof_point("proofpoint:abc"))
        assert backend.calls[0]["path"] == "/api/v1/proof-points/proofpoint:abc/exercises"

    def test_request_bodies(self, backend, make_backend_client):
        backend.on("PUT", "/proofpoints/pp1/prerequisitos", {"ok": True})
        backend.on("POST", "/exercises/ex1/generate", {"ok": True})
        _run(make_backend_client, lambda c: ProofPointsApi(c).update_prerequisites("pp1", ["pp0"]))
        _run(make_backend_client, lambda c: ExerciseInstancesApi(c).generate("ex1", force_regenerate=True))
        assert backend.calls[0]["json"] == {"prerequisitos": ["pp0"]}
        assert backend.calls[1]["json"] == {"forceRegenerate": True}

    def test_cohort_endpoints(self, backend, make_backend_client):
        backend.on("GET", "/cohortes/c1/estudiantes", [{"id": "s1"}])
        assert _run(make_backend_client, lambda c: CohortsApi(c).students("c1")) == [{"id": "s1"}]


class TestErrors:
    def test_backend_message_is_kept(self, backend, make_backend_client):
        backend.on("GET", "/programs/p1", (404, {"message": "Programa no existe", "error": "Not Found"}))
        with pytest.raises(ApiClientError) as exc:
            _run(make_backend_client, lambda c: c.get("/programs/p1"))
        assert (exc.value.status_code, exc.value.message, exc.value.error) == (404, "Programa no existe", "Not Found")

    def test_validation_message_list_is_joined(self, backend, make_backend_client):
        backend.on("POST", "/programs", (400, {"message": ["nombre vacío", "fases inválidas"]}))
        with pytest.raises(ApiClientError) as exc:
            _run(make_backend_client, lambda c: c.post("/programs", {}))
        assert exc.value.message == "nombre vacío; fases inválidas"

    def test_reason_phrase_without_json(self, backend, make_backend_client):
        backend.on("GET", "/programs", lambda request: httpx.Response(502, text="bad gateway"))
        with pytest.raises(ApiClientError) as exc:
            _run(make_backend_client, lambda c: c.get("/programs"))
        assert (exc.value.status_code, exc.value.message) == (502, "Bad Gateway")

    def test_network_failure_is_503(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        async def run():
            client = BackendClient("t", transport=httpx.MockTransport(refuse))
            try:
                await client.get("/programs")
            finally:
                await client.aclose()

        with pytest.raises(ApiClientError) as exc:
            asyncio.run(run())
        assert exc.value.status_code == 503

    def test_non_json_success_is_502(self, backend, make_backend_client):
        backend.on("GET", "/programs", lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ApiClientError) as exc:
            _run(make_backend_client, lambda c: c.get("/programs"))
        assert exc.value.status_code == 502
