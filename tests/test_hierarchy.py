import json
import os
import sys
import unittest
from typing import Dict, List

sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

from hierarchy import (
    FLAG_DANGLING,
    FLAG_FORCED,
    FLAG_MISSING_LINEAGE,
    FLAG_PROVISIONAL,
    HierarchyEdge,
    ancestors,
    build_graph,
    build_hierarchy,
    descendants,
    export_graph_json,
    export_graphml,
    filtered_generations,
    generation_violations,
    lineage_from_dataset,
    lineage_path,
)
from reconcile import ChildEntry, MutationGroup
from utils import (
    DANGLING_PARENT,
    MISSING_LINEAGE,
    NON_TERMINATING_RELAXATION,
    PROVISIONAL_GENERATION,
    RELAXATION_FALLBACK,
    Diagnostics,
)


def lineage(combinations: Dict[str, List[List[str]]]) -> Dict[str, dict]:
    return {node_id: {"name": node_id, "parentCombinations": combos} for node_id, combos in combinations.items()}


def diamond() -> Dict[str, dict]:
    return lineage(
        {
            "A": [],
            "B": [["A", "A"]],
            "C": [["A", "A"]],
            "D": [["B", "C"]],
        }
    )


class TestGenerations(unittest.TestCase):
    def test_common_from_forest_and_meadows(self) -> None:
        bees = {
            "forestry.forest": {"name": "Forest", "mod": "Forestry"},
            "forestry.meadows": {"name": "Meadows", "mod": "Forestry"},
        }
        groups = [
            MutationGroup(
                parents=("forestry.forest", "forestry.meadows"),
                children=[ChildEntry(species="forestry.common", probability=0.15)],
            )
        ]
        hierarchy = build_hierarchy(lineage_from_dataset(bees, groups))
        common = hierarchy.get("forestry.common")
        self.assertIsNotNone(common)
        self.assertEqual(common.generation, 1)
        self.assertEqual(common.parent_combinations, [["forestry.forest", "forestry.meadows"]])
        self.assertEqual(hierarchy.get("forestry.forest").generation, 0)
        self.assertEqual(hierarchy.get("forestry.meadows").generation, 0)
        self.assertEqual(hierarchy.get("forestry.forest").children, ["forestry.common"])

    def test_diamond_generations(self) -> None:
        hierarchy = build_hierarchy(diamond())
        generations = {node.id: node.generation for node in hierarchy.nodes}
        self.assertEqual(generations, {"A": 0, "B": 1, "C": 1, "D": 2})
        self.assertEqual(hierarchy.generations(), {0: ["A"], 1: ["B", "C"], 2: ["D"]})
        self.assertEqual(hierarchy.passes, 1)

    def test_input_order_does_not_change_generations(self) -> None:
        forward = build_hierarchy(diamond())
        reversed_input = dict(reversed(list(diamond().items())))
        backward = build_hierarchy(reversed_input)
        self.assertEqual(
            {node.id: node.generation for node in forward.nodes},
            {node.id: node.generation for node in backward.nodes},
        )
        self.assertEqual(backward.passes, 2)

    def test_deepest_combination_wins(self) -> None:
        bees = diamond()
        bees["X"] = {"parentCombinations": [["A", "A"], ["D", "D"]]}
        hierarchy = build_hierarchy(bees)
        self.assertEqual(hierarchy.get("X").generation, 3)
        self.assertEqual(generation_violations(hierarchy), [])

    def test_missing_lineage_is_generation_zero(self) -> None:
        diagnostics = Diagnostics()
        hierarchy = build_hierarchy({"A": {"name": "A"}, "B": None}, diagnostics=diagnostics)
        self.assertIs(hierarchy.diagnostics, diagnostics)
        for node_id in ("A", "B"):
            node = hierarchy.get(node_id)
            self.assertEqual(node.generation, 0)
            self.assertIn(FLAG_MISSING_LINEAGE, node.flags)
        self.assertEqual(len(diagnostics.of_kind(MISSING_LINEAGE)), 2)

    def test_malformed_combination_is_ignored_with_warning(self) -> None:
        hierarchy = build_hierarchy(lineage({"A": [], "B": [["A"], ["A", "A"]]}))
        self.assertEqual(hierarchy.get("B").generation, 1)
        self.assertEqual(hierarchy.get("B").parent_combinations, [["A", "A"]])
        self.assertEqual(len(hierarchy.diagnostics.warnings), 1)

    def test_duplicate_combinations_collapse(self) -> None:
        hierarchy = build_hierarchy(lineage({"A": [], "B": [["A", "A"], ["A", "A"]]}))
        self.assertEqual(hierarchy.get("B").parent_combinations, [["A", "A"]])
        self.assertEqual(hierarchy.edges, [HierarchyEdge(source="A", target="B")])


class TestDanglingAndCycles(unittest.TestCase):
    def test_only_dangling_parents_forces_zero(self) -> None:
        hierarchy = build_hierarchy(lineage({"A": [], "B": [["A", "Ghost"]]}))
        node = hierarchy.get("B")
        self.assertEqual(node.generation, 0)
        self.assertEqual(node.flags, {FLAG_DANGLING, FLAG_FORCED})
        diagnostics = hierarchy.diagnostics
        self.assertEqual(len(diagnostics.of_kind(DANGLING_PARENT)), 1)
        self.assertEqual(diagnostics.of_kind(DANGLING_PARENT)[0].detail["parent"], "Ghost")
        self.assertEqual(len(diagnostics.of_kind(RELAXATION_FALLBACK)), 1)
        self.assertEqual(diagnostics.of_kind(NON_TERMINATING_RELAXATION), [])
        # the known parent still gets an edge
        self.assertEqual(hierarchy.edges, [HierarchyEdge(source="A", target="B")])
        self.assertEqual(hierarchy.get("A").children, ["B"])

    def test_waiting_on_all_dangling_parent_is_not_provisional(self) -> None:
        hierarchy = build_hierarchy(lineage({"A": [], "B": [["A", "Ghost"]], "C": [["B", "A"]]}))
        self.assertEqual(hierarchy.get("B").generation, 0)
        self.assertEqual(hierarchy.get("B").flags, {FLAG_DANGLING, FLAG_FORCED})
        child = hierarchy.get("C")
        self.assertEqual(child.generation, 1)
        self.assertEqual(child.flags, set())
        self.assertEqual(hierarchy.diagnostics.of_kind(PROVISIONAL_GENERATION), [])
        self.assertEqual(len(hierarchy.diagnostics.of_kind(RELAXATION_FALLBACK)), 1)

    def test_live_combination_survives_dangling_one(self) -> None:
        hierarchy = build_hierarchy(lineage({"A": [], "C": [["A", "Ghost"], ["A", "A"]]}))
        node = hierarchy.get("C")
        self.assertEqual(node.generation, 1)
        self.assertIn(FLAG_DANGLING, node.flags)
        self.assertNotIn(FLAG_FORCED, node.flags)

    def test_cycle_with_external_root_is_provisional(self) -> None:
        hierarchy = build_hierarchy(
            lineage(
                {
                    "A": [],
                    "X": [["A", "A"], ["Y", "A"]],
                    "Y": [["X", "A"]],
                }
            )
        )
        self.assertEqual(hierarchy.get("X").generation, 1)
        self.assertIn(FLAG_PROVISIONAL, hierarchy.get("X").flags)
        self.assertEqual(hierarchy.get("Y").generation, 2)
        self.assertEqual(hierarchy.get("Y").flags, set())
        self.assertEqual(len(hierarchy.diagnostics.of_kind(PROVISIONAL_GENERATION)), 1)
        self.assertEqual(generation_violations(hierarchy), [])

    def test_closed_cycle_is_forced(self) -> None:
        hierarchy = build_hierarchy(lineage({"P": [["Q", "Q"]], "Q": [["P", "P"]]}))
        for node_id in ("P", "Q"):
            self.assertEqual(hierarchy.get(node_id).generation, 0)
            self.assertIn(FLAG_FORCED, hierarchy.get(node_id).flags)
        self.assertEqual(len(hierarchy.diagnostics.of_kind(RELAXATION_FALLBACK)), 2)
        self.assertEqual(hierarchy.diagnostics.of_kind(NON_TERMINATING_RELAXATION), [])

    def test_pass_limit_forces_remaining_nodes(self) -> None:
        chain = lineage(
            {
                "n5": [["n4", "n4"]],
                "n4": [["n3", "n3"]],
                "n3": [["n2", "n2"]],
                "n2": [["n1", "n1"]],
                "n1": [["root", "root"]],
                "root": [],
            }
        )
        hierarchy = build_hierarchy(chain, max_passes=2)
        self.assertEqual(hierarchy.passes, 2)
        self.assertEqual(hierarchy.get("n1").generation, 1)
        self.assertEqual(hierarchy.get("n2").generation, 2)
        for node_id in ("n3", "n4", "n5"):
            self.assertEqual(hierarchy.get(node_id).generation, 0)
            self.assertIn(FLAG_FORCED, hierarchy.get(node_id).flags)
        self.assertEqual(len(hierarchy.diagnostics.of_kind(NON_TERMINATING_RELAXATION)), 1)
        self.assertEqual(len(hierarchy.diagnostics.of_kind(RELAXATION_FALLBACK)), 3)
        self.assertEqual(generation_violations(hierarchy), [])

        full = build_hierarchy(chain)
        self.assertEqual(full.get("n5").generation, 5)
        self.assertEqual(full.diagnostics.entries, [])

    def test_generation_zero_only_for_roots_or_forced(self) -> None:
        bees = diamond()
        bees.update(lineage({"B2": [["A", "Ghost"]], "P": [["Q", "Q"]], "Q": [["P", "P"]]}))
        bees["M"] = {"name": "M"}
        hierarchy = build_hierarchy(bees)
        for node in hierarchy.nodes:
            is_root = not node.parent_combinations
            self.assertEqual(
                node.generation == 0,
                is_root or FLAG_FORCED in node.flags,
                node.id,
            )


class TestEdgesAndQueries(unittest.TestCase):
    def test_edges_follow_parent_combinations(self) -> None:
        hierarchy = build_hierarchy(lineage({"A": [], "B": [], "C": [], "X": [["A", "B"], ["A", "C"]]}))
        self.assertEqual(
            hierarchy.edges,
            [
                HierarchyEdge(source="A", target="X"),
                HierarchyEdge(source="B", target="X"),
                HierarchyEdge(source="C", target="X"),
            ],
        )
        self.assertEqual(hierarchy.get("A").children, ["X"])
        self.assertEqual(hierarchy.get("X").parents, ["A", "B", "C"])

    def test_diamond_closures(self) -> None:
        hierarchy = build_hierarchy(diamond())
        self.assertEqual(ancestors(hierarchy, "D"), {"A", "B", "C"})
        self.assertEqual(descendants(hierarchy, "A"), {"B", "C", "D"})
        self.assertEqual(ancestors(hierarchy, "A"), set())
        self.assertEqual(lineage_path(hierarchy, "B"), {"A", "B", "D"})

    def test_unknown_id_has_no_relatives(self) -> None:
        hierarchy = build_hierarchy(diamond())
        self.assertEqual(ancestors(hierarchy, "Nope"), set())
        self.assertEqual(descendants(hierarchy, "Nope"), set())
        self.assertEqual(lineage_path(hierarchy, "Nope"), set())

    def test_closure_excludes_start_inside_cycle(self) -> None:
        hierarchy = build_hierarchy(
            lineage({"A": [], "X": [["A", "A"], ["Y", "A"]], "Y": [["X", "A"]]})
        )
        self.assertEqual(ancestors(hierarchy, "X"), {"A", "Y"})
        self.assertEqual(descendants(hierarchy, "X"), {"Y"})

    def test_filtered_generations_treat_outside_parents_as_roots(self) -> None:
        hierarchy = build_hierarchy(diamond())
        self.assertEqual(filtered_generations(hierarchy, ["B", "C", "D"]), {"B": 0, "C": 0, "D": 1})
        self.assertEqual(filtered_generations(hierarchy, ["D", "Nope"]), {"D": 0})
        self.assertEqual(
            filtered_generations(hierarchy, ["A", "B", "C", "D"]),
            {"A": 0, "B": 1, "C": 1, "D": 2},
        )

    def test_filtered_generations_keep_partner_outside_subset(self) -> None:
        hierarchy = build_hierarchy(
            lineage(
                {
                    "Forest": [],
                    "Meadows": [],
                    "Common": [["Forest", "Meadows"]],
                    "Cultivated": [["Common", "Forest"]],
                }
            )
        )
        path = lineage_path(hierarchy, "Forest")
        self.assertEqual(path, {"Forest", "Common", "Cultivated"})
        self.assertEqual(
            filtered_generations(hierarchy, sorted(path)),
            {"Common": 1, "Cultivated": 2, "Forest": 0},
        )

    def test_lineage_from_dataset_dangling_parents_without_placeholders(self) -> None:
        bees = {"Forestry:Forest": {"name": "Forest", "mod": "Forestry"}}
        groups = [
            MutationGroup(
                parents=("Forestry:Forest", "Forestry:Ghost"),
                children=[ChildEntry(species="Forestry:Spirit", probability=0.1)],
            )
        ]
        records = lineage_from_dataset(bees, groups, placeholders=False)
        self.assertNotIn("Forestry:Ghost", records)
        self.assertEqual(records["Forestry:Spirit"]["name"], "Spirit")
        self.assertEqual(records["Forestry:Spirit"]["mod"], "Forestry")
        hierarchy = build_hierarchy(records)
        self.assertEqual(len(hierarchy.diagnostics.of_kind(DANGLING_PARENT)), 1)

        with_placeholders = lineage_from_dataset(bees, groups)
        self.assertIn("Forestry:Ghost", with_placeholders)
        self.assertEqual(build_hierarchy(with_placeholders).get("Forestry:Spirit").generation, 1)


class TestExport(unittest.TestCase):
    def test_graph_json(self) -> None:
        hierarchy = build_hierarchy(diamond())
        graph = json.loads(export_graph_json(build_graph(hierarchy)))
        self.assertTrue(graph["directed"])
        self.assertEqual([node["id"] for node in graph["nodes"]], ["A", "B", "C", "D"])
        self.assertEqual(len(graph["edges"]), 4)
        self.assertEqual(graph["nodes"][3]["generation"], 2)

    def test_graph_subset(self) -> None:
        hierarchy = build_hierarchy(diamond())
        graph = build_graph(hierarchy, include={"A", "B", "D"})
        self.assertEqual([node["id"] for node in graph["nodes"]], ["A", "B", "D"])
        self.assertEqual(
            [(edge["source"], edge["target"]) for edge in graph["edges"]],
            [("A", "B"), ("B", "D")],
        )

    def test_graphml_escapes_ids(self) -> None:
        hierarchy = build_hierarchy(lineage({"Mod:Bee & Co": [], "Mod:<Child>": [["Mod:Bee & Co", "Mod:Bee & Co"]]}))
        text = export_graphml(build_graph(hierarchy))
        self.assertIn('<node id="Mod:Bee &amp; Co">', text)
        self.assertIn('<edge source="Mod:Bee &amp; Co" target="Mod:&lt;Child&gt;">', text)
        self.assertIn('<data key="n_generation">1</data>', text)


if __name__ == "__main__":
    unittest.main()
