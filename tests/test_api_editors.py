"""
API tests for content editors, local drafts and phase documentation.
"""
from instructor_studio.models import EditorDraft, Notification


def _full_documentation():
    return {
        "contexto": "c" * 220,
        "conceptos_clave": [{"id": f"c{i}", "nombre": "N", "definicion": "D", "ejemplo": "E"} for i in range(3)],
        "casos_estudio": [{"id": f"k{i}", "titulo": "T", "tipo": "fracaso", "descripcion": "D"} for i in range(2)],
        "errores_comunes": [{"id": f"e{i}", "titulo": "T", "explicacion": "X", "como_evitar": "Y"} for i in range(2)],
        "recursos_referencia": [],
        "criterios_evaluacion": [
            {"id": f"cr{i}", "nombre": "N", "descriptor": "D", "nivel_importancia": "deseable"} for i in range(3)
        ],
    }


class TestDrafts:
    def test_autosave_bumps_revision(self, client):
        first = client.put("/editors/leccion/c1/draft", json={"payload": {"markdown": "uno"}}).json()
        assert first["revision"] == 1
        second = client.put("/editors/leccion/c1/draft", json={"payload": {"markdown": "dos"}, "revision": 1}).json()
        assert second["revision"] == 2
        assert client.get("/editors/leccion/c1/draft").json()["payload"] == {"markdown": "dos"}

    def test_stale_revision_conflicts(self, client):
        client.put("/editors/leccion/c1/draft", json={"payload": {"a": 1}})
        client.put("/editors/leccion/c1/draft", json={"payload": {"a": 2}, "revision": 1})
        r = client.put("/editors/leccion/c1/draft", json={"payload": {"a": 3}, "revision": 1})
        assert r.status_code == 409
        assert client.get("/editors/leccion/c1/draft").json()["payload"] == {"a": 2}

    def test_drafts_are_scoped_by_kind(self, client):
        client.put("/editors/leccion/c1/draft", json={"payload": {"a": 1}})
        assert client.get("/editors/cuaderno/c1/draft").status_code == 404

    def test_discard(self, client):
        client.put("/editors/simulacion/c1/draft", json={"payload": {"a": 1}})
        assert client.delete("/editors/simulacion/c1/draft").status_code == 204
        assert client.get("/editors/simulacion/c1/draft").status_code == 404

    def test_unknown_kind(self, client):
        assert client.put("/editors/video/c1/draft", json={"payload": {}}).status_code == 422


class TestContent:
    def test_load_includes_pending_draft(self, client, backend):
        backend.on("GET", "/componentes/c1/contenido", {"id": "cc1", "contenido": {"markdown": "hola"}})
        client.put("/editors/leccion/c1/draft", json={"payload": {"markdown": "borrador"}})
        data = client.get("/editors/leccion/c1").json()
        assert data["contenido"]["id"] == "cc1"
        assert data["draft"]["payload"] == {"markdown": "borrador"}

    def test_save_lesson_adds_reading_metadata(self, client, backend, db):
        backend.on("PUT", "/componentes/c1/contenido", {"id": "cc2"})
        r = client.post("/editors/leccion/c1/save", json={"contenido": {"markdown": "## A\n\nuno dos tres"}})
        assert r.status_code == 200
        sent = backend.calls[0]["json"]["contenido"]
        assert (sent["palabras_estimadas"], sent["tiempo_lectura_minutos"], sent["secciones"]) == (5, 1, 1)
        assert db.query(Notification).one().descripcion == "Contenido guardado"

    def test_save_uses_and_drops_draft(self, client, backend, db):
        backend.on("PUT", "/componentes/c1/contenido", {"id": "cc2"})
        client.put("/editors/cuaderno/c1/draft", json={"payload": {"secciones": []}})
        r = client.post("/editors/cuaderno/c1/save", json={})
        assert r.status_code == 200
        assert backend.calls[0]["json"] == {"contenido": {"secciones": []}}
        assert db.query(EditorDraft).count() == 0

    def test_save_without_anything(self, client, backend):
        assert client.post("/editors/leccion/c1/save", json={}).status_code == 400
        assert backend.calls == []

    def test_publish(self, client, backend):
        backend.on("POST", "/contenido/publicar", {"estado": "publicado"})
        r = client.post("/editors/leccion/c1/publish", json={"componente_contenido_id": "cc2"})
        assert r.status_code == 200
        assert backend.calls[0]["json"] == {"componenteContenidoId": "cc2"}

    def test_history_and_restore(self, client, backend):
        backend.on("GET", "/contenido/historial/c1", [{"id": "v1"}])
        backend.on("POST", "/contenido/restaurar", {"id": "v3"})
        assert client.get("/editors/leccion/c1/history").json() == [{"id": "v1"}]
        client.post("/editors/leccion/c1/restore", json={"version_id": "v1", "razon": "error"})
        assert backend.calls[-1]["json"] == {"componenteId": "c1", "versionId": "v1", "razon": "error"}


class TestPhaseDocumentation:
    def test_get_empty(self, client, backend):
        backend.on("GET", "/programas/fases/f1/documentacion", (200, None))
        data = client.get("/editors/fases/f1/documentation").json()
        assert data["documentacion"]["fase_id"] == "f1"
        assert data["completitud"] == 0
        assert data["from_draft"] is False

    def test_draft_overrides_backend(self, client, backend):
        backend.on("GET", "/programas/fases/f1/documentacion", {"fase_id": "f1", "contexto": "viejo"})
        client.put("/editors/fases/f1/documentation/draft", json={"payload": {"contexto": "nuevo"}})
        data = client.get("/editors/fases/f1/documentation").json()
        assert data["from_draft"] is True
        assert data["documentacion"]["contexto"] == "nuevo"
        assert data["secciones"]["contexto"] == "partial"

    def test_autosave_validates_entries(self, client):
        r = client.put(
            "/editors/fases/f1/documentation/draft",
            json={"payload": {"casos_estudio": [{"id": "k1", "titulo": "T", "tipo": "otro", "descripcion": "D"}]}},
        )
        assert r.status_code == 422

    def test_completing_requires_minimums(self, client, backend):
        r = client.post("/editors/fases/f1/documentation", json={"documentacion": {"contexto": "corto"}, "completar": True})
        assert r.status_code == 422
        assert backend.calls == []

    def test_complete(self, client, backend, db):
        backend.on("PUT", "/programas/fases/f1/documentacion", {"ok": True})
        client.put("/editors/fases/f1/documentation/draft", json={"payload": {"contexto": "x"}})
        r = client.post("/editors/fases/f1/documentation", json={"documentacion": _full_documentation(), "completar": True})
        assert r.status_code == 200
        assert r.json()["completitud"] == 83
        assert r.json()["secciones"]["recursos"] == "empty"
        assert backend.calls[0]["json"]["fase_id"] == "f1"
        assert db.query(EditorDraft).count() == 0
        assert db.query(Notification).one().descripcion == "Documentación completada"
