"""
Tests for roadmap layout and the reorder editor.
"""
import asyncio
import json

import httpx
import pytest

from factories import make_phase, make_program
from instructor_studio.backend_api import ArchitectureApi
from instructor_studio.backend_client import ApiClientError
from instructor_studio.roadmap import (
    RoadmapEditor,
    build_roadmap,
    dangling_edges,
    get_editor,
    move_item,
    node_center,
    open_editor,
    close_editor,
    roadmap_payload,
)
from instructor_studio.schemas import Program


def _program():
    return Program.model_validate(make_program())


class TestBuildRoadmap:
    def test_one_node_per_program_phase_and_proof_point(self):
        nodes, _ = build_roadmap(_program())
        assert [n.id for n in nodes] == ["programa-prog1", "fase-f1", "pp-pp1", "pp-pp2", "fase-f2", "pp-pp3"]

    def test_layout_columns_follow_phase_order(self):
        nodes = {n.id: n for n in build_roadmap(_program())[0]}
        assert (nodes["programa-prog1"].x, nodes["programa-prog1"].y) == (50, 300)
        assert (nodes["fase-f1"].x, nodes["fase-f1"].y) == (450, 100)
        assert (nodes["fase-f2"].x, nodes["fase-f2"].y) == (750, 100)
        assert (nodes["pp-pp1"].x, nodes["pp-pp1"].y) == (450, 300)
        assert (nodes["pp-pp2"].x, nodes["pp-pp2"].y) == (450, 450)
        assert (nodes["pp-pp3"].x, nodes["pp-pp3"].y) == (750, 300)

    def test_node_data_counts(self):
        nodes = {n.id: n for n in build_roadmap(_program())[0]}
        assert nodes["programa-prog1"].data["fases_count"] == 2
        assert nodes["programa-prog1"].data["pp_count"] == 3
        assert nodes["fase-f1"].data["proof_points_count"] == 2
        assert nodes["pp-pp1"].data["contenido_listo"] is True
        assert nodes["pp-pp2"].data["contenido_listo"] is False

    def test_edges_include_hierarchy_and_prerequisites(self):
        _, edges = build_roadmap(_program())
        by_id = {e.id: e for e in edges}
        assert by_id["e-programa-f1"].source == "programa-prog1"
        assert by_id["e-fase-pp3"].target == "pp-pp3"
        prereq = by_id["e-prereq-pp3-pp1"]
        assert (prereq.source, prereq.target, prereq.type) == ("pp-pp1", "pp-pp3", "prerequisite")

    def test_editable_flag_is_propagated(self):
        nodes, _ = build_roadmap(_program(), editable=False)
        assert all(n.data["editable"] is False for n in nodes if n.type != "programa")

    def test_empty_program(self):
        nodes, edges = build_roadmap(Program(id="empty"))
        assert [n.type for n in nodes] == ["programa"]
        assert edges == []


class TestRoadmapHelpers:
    def test_node_center_uses_card_size(self):
        nodes, _ = build_roadmap(_program())
        assert node_center(nodes, "pp-pp1") == (560, 350)
        assert node_center(nodes, "programa-prog1") == (200, 350)

    def test_node_center_of_unknown_node(self):
        nodes, _ = build_roadmap(_program())
        assert node_center(nodes, "pp-missing") == (0, 0)

    def test_dangling_prerequisite_is_reported(self):
        nodes, edges = build_roadmap(_program())
        assert [e.id for e in dangling_edges(nodes, edges)] == ["e-prereq-pp2-ghost"]

    def test_payload_lists_dangling_ids(self):
        payload = roadmap_payload(_program())
        assert payload["programa_id"] == "prog1"
        assert payload["dangling_edges"] == ["e-prereq-pp2-ghost"]
        assert len(payload["nodes"]) == 6

    def test_move_item(self):
        assert move_item(["a", "b", "c"], 0, 2) == ["b", "c", "a"]
        assert move_item(["a", "b", "c"], 2, 0) == ["c", "a", "b"]

    def test_move_item_does_not_mutate_input(self):
        items = ["a", "b"]
        move_item(items, 0, 1)
        assert items == ["a", "b"]

    def test_move_item_out_of_range(self):
        with pytest.raises(IndexError):
            move_item(["a"], 0, 1)
        with pytest.raises(IndexError):
            move_item(["a"], -1, 0)


class TestRoadmapEditor:
    def _reorder(self, make_backend_client, coro_factory):
        async def run():
            client = make_backend_client()
            try:
                return await coro_factory(ArchitectureApi(client))
            finally:
                await client.aclose()
        return asyncio.run(run())

    def test_reorder_phases_persists_new_order(self, backend, make_backend_client):
        backend.on("PATCH", "/arquitectura/ordenar", {"ok": True})
        editor = RoadmapEditor(_program())
        self._reorder(make_backend_client, lambda api: editor.reorder_phases(api, 1, 0))

        assert [f.id for f in editor.program.fases] == ["f2", "f1"]
        assert [f.numero for f in editor.program.fases] == [1, 2]
        assert backend.calls_to("PATCH", "/arquitectura/ordenar")[0]["json"] == {
            "items": [{"id": "f2", "orden": 1}, {"id": "f1", "orden": 2}],
        }
        assert editor.nodes[1].id == "fase-f2"

    def test_reorder_proof_points_within_phase(self, backend, make_backend_client):
        backend.on("PATCH", "/arquitectura/ordenar", {"ok": True})
        editor = RoadmapEditor(_program())
        self._reorder(make_backend_client, lambda api: editor.reorder_proof_points(api, "f1", 0, 1))

        assert [pp.id for pp in editor.program.fases[0].proof_points] == ["pp2", "pp1"]
        assert backend.calls_to("PATCH", "/arquitectura/ordenar")[0]["json"]["items"] == [
            {"id": "pp2", "orden": 1},
            {"id": "pp1", "orden": 2},
        ]

    def test_rejected_reorder_restores_previous_order(self, backend, make_backend_client):
        backend.on("PATCH", "/arquitectura/ordenar", (500, {"message": "boom"}))
        editor = RoadmapEditor(_program())
        with pytest.raises(ApiClientError) as exc:
            self._reorder(make_backend_client, lambda api: editor.reorder_phases(api, 0, 1))

        assert exc.value.status_code == 500
        assert [f.id for f in editor.program.fases] == ["f1", "f2"]
        assert [f.numero for f in editor.program.fases] == [1, 2]

    def test_overlapping_reorders_run_in_turn(self, backend, make_backend_client):
        accepted = []

        async def ordenar(request):
            items = json.loads(request.content)["items"]
            if len(backend.calls_to("PATCH", "/arquitectura/ordenar")) == 1:
                await asyncio.sleep(0.05)
                return httpx.Response(500, json={"message": "boom"})
            accepted.append([item["id"] for item in items])
            return httpx.Response(200, json={"ok": True})

        backend.on("PATCH", "/arquitectura/ordenar", ordenar)
        data = make_program()
        data["fases"].append(make_phase("f3", 3, []))
        editor = RoadmapEditor(Program.model_validate(data))

        async def run():
            client = make_backend_client()
            api = ArchitectureApi(client)
            try:
                return await asyncio.gather(
                    editor.reorder_phases(api, 0, 2),
                    editor.reorder_phases(api, 0, 1),
                    return_exceptions=True,
                )
            finally:
                await client.aclose()

        first, second = asyncio.run(run())
        assert isinstance(first, ApiClientError)
        assert not isinstance(second, Exception)
        assert accepted == [["f2", "f1", "f3"]]
        assert [f.id for f in editor.program.fases] == accepted[-1]

    def test_unknown_phase(self, backend, make_backend_client):
        editor = RoadmapEditor(_program())
        with pytest.raises(KeyError):
            self._reorder(make_backend_client, lambda api: editor.reorder_proof_points(api, "nope", 0, 1))
        assert backend.calls == []

    def test_read_only_editor_refuses_reorder(self, backend, make_backend_client):
        editor = RoadmapEditor(_program(), edition_mode=False)
        with pytest.raises(PermissionError):
            self._reorder(make_backend_client, lambda api: editor.reorder_phases(api, 0, 1))
        assert backend.calls == []

    def test_export_is_never_editable(self):
        data = RoadmapEditor(_program()).export_json()
        assert data["programa"]["id"] == "prog1"
        assert all(n["data"].get("editable", False) is False for n in data["nodes"])


class TestEditorRegistry:
    def test_open_reuses_editor_and_replaces_tree(self):
        first = open_editor(_program())
        updated = _program()
        updated.nombre = "Renombrado"
        second = open_editor(updated)
        assert first is second
        assert get_editor("prog1").program.nombre == "Renombrado"

    def test_close_editor(self):
        open_editor(_program())
        close_editor("prog1")
        assert get_editor("prog1") is None
