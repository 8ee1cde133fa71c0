"""
API tests for the roadmap editor routes.
"""
from factories import make_program
from instructor_studio.models import Notification


def _load(client, backend, edition_mode=True):
    backend.on("GET", "/programas/prog1/arquitectura", make_program())
    r = client.get("/roadmap/prog1", params={"edition_mode": edition_mode})
    assert r.status_code == 200
    return r.json()


class TestRoadmapRoutes:
    def test_load(self, client, backend):
        data = _load(client, backend)
        assert data["programa_id"] == "prog1"
        assert data["edition_mode"] is True
        assert data["dangling_edges"] == ["e-prereq-pp2-ghost"]

    def test_read_only_by_default(self, client, backend):
        backend.on("GET", "/programas/prog1/arquitectura", make_program())
        data = client.get("/roadmap/prog1").json()
        assert data["edition_mode"] is False
        r = client.post("/roadmap/prog1/reorder-phases", json={"from_index": 0, "to_index": 1})
        assert r.status_code == 409

    def test_toggle_edition_mode(self, client, backend):
        _load(client, backend, edition_mode=False)
        r = client.put("/roadmap/prog1/edition-mode", json={"enabled": True})
        assert r.json()["edition_mode"] is True

    def test_unloaded_roadmap(self, client):
        r = client.post("/roadmap/prog1/reorder-phases", json={"from_index": 0, "to_index": 1})
        assert r.status_code == 404

    def test_reorder_phases(self, client, backend):
        _load(client, backend)
        backend.on("PATCH", "/arquitectura/ordenar", {"ok": True})
        r = client.post("/roadmap/prog1/reorder-phases", json={"from_index": 0, "to_index": 1})
        assert r.status_code == 200
        fase_nodes = [n for n in r.json()["nodes"] if n["type"] == "fase"]
        assert [(n["id"], n["x"], n["data"]["numero"]) for n in fase_nodes] == [("fase-f2", 450, 1), ("fase-f1", 750, 2)]

    def test_rejected_reorder_is_rolled_back(self, client, backend, db):
        _load(client, backend)
        backend.on("PATCH", "/arquitectura/ordenar", (500, {"message": "No se pudo ordenar"}))
        r = client.post("/roadmap/prog1/reorder-phases", json={"from_index": 0, "to_index": 1})
        assert r.status_code == 500
        assert r.json()["message"] == "No se pudo ordenar"
        assert db.query(Notification).one().level == "error"

        nodes = client.get("/roadmap/prog1/export").json()["nodes"]
        assert [n["id"] for n in nodes if n["type"] == "fase"] == ["fase-f1", "fase-f2"]

    def test_reorder_proof_points(self, client, backend):
        _load(client, backend)
        backend.on("PATCH", "/arquitectura/ordenar", {"ok": True})
        r = client.post("/roadmap/prog1/reorder-proof-points", json={"fase_id": "f1", "from_index": 1, "to_index": 0})
        assert r.status_code == 200
        assert backend.calls[-1]["json"]["items"] == [{"id": "pp2", "orden": 1}, {"id": "pp1", "orden": 2}]

    def test_reorder_errors(self, client, backend):
        _load(client, backend)
        assert client.post("/roadmap/prog1/reorder-phases", json={"from_index": 0, "to_index": 5}).status_code == 400
        r = client.post("/roadmap/prog1/reorder-proof-points", json={"fase_id": "zz", "from_index": 0, "to_index": 1})
        assert r.status_code == 404

    def test_export_download(self, client, backend):
        _load(client, backend)
        r = client.get("/roadmap/prog1/export")
        assert r.headers["content-disposition"] == 'attachment; filename="roadmap-prog1.json"'
        assert r.json()["programa"]["nombre"] == "Programa de prueba"

    def test_close(self, client, backend):
        _load(client, backend)
        assert client.delete("/roadmap/prog1").status_code == 204
        assert client.get("/roadmap/prog1/export").status_code == 404
