"""
API tests for program, phase and proof point routes.
"""
from instructor_studio.models import Notification


def _wizard_form(**overrides):
    form = {
        "nombre_programa": "Emprendimiento",
        "duracion_semanas": 8,
        "numero_fases": 1,
        "fases": [{
            "nombre_fase": "Descubrir",
            "duracion_semanas_fase": 4,
            "numero_proof_points": 1,
            "proof_points": [{"nombre_pp": "Entrevistas", "pregunta_central": "¿Quién sufre el problema?"}],
        }],
    }
    form.update(overrides)
    return form


class TestProgramRoutes:
    def test_list_forwards_filters(self, client, backend):
        backend.on("GET", "/programs", [{"id": "p1"}])
        r = client.get("/programs", params={"estado": "borrador"})
        assert r.status_code == 200
        assert r.json() == [{"id": "p1"}]
        assert backend.calls[0]["params"] == {"estado": "borrador"}

    def test_token_is_forwarded(self, client, backend):
        backend.on("GET", "/programs/p1", {"id": "p1"})
        client.get("/programs/p1")
        assert backend.calls[0]["headers"]["authorization"] == "Bearer test-token"

    def test_backend_error_is_passed_through(self, client, backend, db):
        backend.on("GET", "/programs/p1", (404, {"message": "Programa no existe", "error": "Not Found"}))
        r = client.get("/programs/p1")
        assert r.status_code == 404
        assert r.json() == {"message": "Programa no existe", "error": "Not Found", "statusCode": 404}
        toast = db.query(Notification).one()
        assert (toast.level, toast.descripcion) == ("error", "Programa no existe")

    def test_publish_raises_toast(self, client, backend, db):
        backend.on("POST", "/programs/p1/publish", {"id": "p1", "estado": "publicado"})
        r = client.post("/programs/p1/publish")
        assert r.status_code == 200
        assert db.query(Notification).one().descripcion == "Programa publicado"

    def test_delete(self, client, backend):
        backend.on("DELETE", "/programs/p1", (204, None))
        assert client.delete("/programs/p1").status_code == 204

    def test_reorder_phases(self, client, backend):
        backend.on("PUT", "/programs/p1/fases/reorder", [])
        client.put("/programs/p1/fases/reorder", json={"ids": ["f2", "f1"]})
        assert backend.calls[0]["json"] == {"faseIds": ["f2", "f1"]}


class TestWizardRoutes:
    def test_step_materializes_phases(self, client):
        r = client.post("/programs/wizard/step", json={"form": {"numero_fases": 2}, "step": 2})
        assert r.status_code == 200
        assert [f["numero_fase"] for f in r.json()["form"]["fases"]] == [1, 2]
        assert "review" not in r.json()

    def test_last_step_includes_review(self, client):
        r = client.post("/programs/wizard/step", json={"form": _wizard_form(), "step": 4})
        assert r.json()["review"]["valid"] is True

    def test_step_out_of_range(self, client):
        assert client.post("/programs/wizard/step", json={"form": {}, "step": 7}).status_code == 422

    def test_submit_with_issues_is_refused(self, client, backend):
        r = client.post("/programs/wizard", json=_wizard_form(nombre_programa=""))
        assert r.status_code == 400
        issues = r.json()["detail"]["issues"]
        assert issues == [{"message": "El nombre del programa es requerido", "step": 1}]
        assert backend.calls == []

    def test_submit_creates_program(self, client, backend, db):
        backend.on("POST", "/programas", {"id": "p9"})
        r = client.post("/programs/wizard", json=_wizard_form())
        assert r.status_code == 201
        assert r.json() == {"id": "p9"}
        sent = backend.calls[0]["json"]
        assert sent["fases"][0]["proof_points"][0]["slug_pp"] == "entrevistas"
        assert db.query(Notification).one().level == "success"


class TestProofPointRoutes:
    def test_self_prerequisite_rejected(self, client, backend):
        r = client.put("/programs/proof-points/pp1/prerequisites", json={"prerequisitos": ["pp1"]})
        assert r.status_code == 400
        assert backend.calls == []

    def test_prerequisites_saved(self, client, backend):
        backend.on("PUT", "/proofpoints/pp1/prerequisitos", {"id": "pp1"})
        r = client.put("/programs/proof-points/pp1/prerequisites", json={"prerequisitos": ["pp0"]})
        assert r.status_code == 200
        assert backend.calls[0]["json"] == {"prerequisitos": ["pp0"]}

    def test_levels_are_numbered_and_summarized(self, client, backend):
        backend.on("PUT", "/proof-points/pp1", {"id": "pp1"})
        componente = {"tipo": "leccion", "nombre": "Intro", "descripcion": "d", "duracion_minutos": 15, "es_evaluable": True}
        niveles = [
            {"numero": 5, "nombre": "Base", "objetivo_especifico": "o", "componentes": [componente]},
            {"numero": 9, "nombre": "Avanzado", "objetivo_especifico": "o", "componentes": [componente, componente]},
        ]
        r = client.put("/programs/proof-points/pp1/levels", json={"niveles": niveles})
        assert r.status_code == 200
        assert r.json()["summary"] == {"total_componentes": 3, "duracion_total_minutos": 45, "componentes_evaluables": 3}
        sent = backend.calls[0]["json"]["niveles"]
        assert [n["numero"] for n in sent] == [1, 2]

    def test_invalid_level_rejected(self, client, backend):
        r = client.put("/programs/proof-points/pp1/levels", json={"niveles": [{"nombre": "x", "objetivo_especifico": "o", "componentes": []}]})
        assert r.status_code == 422
        assert backend.calls == []
