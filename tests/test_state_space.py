"""
Unit tests for state enumeration, classification and edge inference.
"""

import pytest

from state_network.State_Space import (
    ChangeType,
    EdgeInferenceEngine,
    EdgeKind,
    ElementState,
    NetworkNode,
    NetworkNodeState,
    RecoveryState,
    StateClassifier,
    StateNetworkBuilder,
    atomic_changes,
    build_state_network,
    enumerate_states,
    infer_edges,
)
from state_network.System_Model import ElementConfig, RecoveryDimension, build_system

HW = RecoveryDimension.HARDWARE
SW = RecoveryDimension.SOFTWARE


def configs(**counts):
    return {name: ElementConfig.from_counts(name, c) for name, c in counts.items()}


def element(config, *states):
    return ElementState(config, tuple(RecoveryState(count, active) for count, active in states))


def leaf_states(network, index=0):
    return [node.elements_states[index].recovery_states for node in network.nodes]


# --- Classification ---

def test_and_classification():
    cfg = configs(A={"hardware": 1}, B={"hardware": 1})
    tree = build_system("A & B", cfg)
    a, b = cfg["A"], cfg["B"]

    assert StateClassifier.classify(tree, (element(a, (0, True)), element(b, (0, True)))) == NetworkNodeState.ACTIVE
    assert StateClassifier.classify(tree, (element(a, (0, False)), element(b, (0, True)))) == NetworkNodeState.RECOVERY
    assert StateClassifier.classify(tree, (element(a, (1, False)), element(b, (0, True)))) == NetworkNodeState.TERMINAL


def test_or_classification():
    cfg = configs(A={"hardware": 1}, B={"hardware": 1})
    tree = build_system("A | B", cfg)
    a, b = cfg["A"], cfg["B"]

    assert StateClassifier.classify(tree, (element(a, (0, False)), element(b, (0, True)))) == NetworkNodeState.ACTIVE
    assert StateClassifier.classify(tree, (element(a, (1, False)), element(b, (0, False)))) == NetworkNodeState.RECOVERY
    assert StateClassifier.classify(tree, (element(a, (1, False)), element(b, (1, False)))) == NetworkNodeState.TERMINAL


def test_dual_element_classification():
    a = ElementConfig.from_counts("A", {"hardware": 1, "software": 0})

    assert StateClassifier.classify_element(element(a, (0, True), (0, True))) == NetworkNodeState.ACTIVE
    assert StateClassifier.classify_element(element(a, (0, False), (0, True))) == NetworkNodeState.RECOVERY
    # software has no budget left
    assert StateClassifier.classify_element(element(a, (0, False), (0, False))) == NetworkNodeState.TERMINAL
    assert StateClassifier.classify_element(element(a, (1, True), (0, False))) == NetworkNodeState.TERMINAL


# --- Atomic changes ---

def test_atomic_changes_prefer_failures_hardware_first():
    a = ElementConfig.from_counts("A", {"hardware": 1, "software": 1})
    changes = atomic_changes(element(a, (0, True), (0, True)))

    assert [(c[0], c[1]) for c in changes] == [(ChangeType.FAILURE, HW), (ChangeType.FAILURE, SW)]


def test_atomic_changes_failure_before_recovery():
    a = ElementConfig.from_counts("A", {"hardware": 1, "software": 1})
    changes = atomic_changes(element(a, (0, False), (0, True)))

    assert [(c[0], c[1]) for c in changes] == [(ChangeType.FAILURE, SW), (ChangeType.RECOVERY, HW)]
    assert changes[1][2].get(HW) == RecoveryState(1, True)


def test_atomic_changes_respect_budget():
    a = ElementConfig.from_counts("A", {"hardware": 1})
    assert atomic_changes(element(a, (1, False))) == []


def test_unbounded_failure_variant():
    a = ElementConfig.from_counts("A", {"software": "unbounded"})
    changes = atomic_changes(element(a, (0, True)))
    assert [c[0] for c in changes] == [ChangeType.INFINITE_FAILURE]
    assert atomic_changes(changes[0][2]) == []


# --- Enumeration ---

def test_single_element_enumeration_is_complete():
    network = build_state_network("A", configs(A={"hardware": 1}))

    assert leaf_states(network) == [
        (RecoveryState(0, True),),
        (RecoveryState(0, False),),
        (RecoveryState(1, True),),
        (RecoveryState(1, False),),
    ]
    assert [n.state for n in network.nodes] == [
        NetworkNodeState.ACTIVE, NetworkNodeState.RECOVERY,
        NetworkNodeState.ACTIVE, NetworkNodeState.TERMINAL,
    ]
    assert [n.name for n in network.nodes] == ["S0", "S1", "S2", "S3"]
    assert network.nodes[0].change is None
    assert network.nodes[1].change.change_type == ChangeType.FAILURE
    assert network.nodes[2].change.change_type == ChangeType.RECOVERY
    assert network.nodes[2].change.changed_element == (0, HW)


def test_combinations_are_not_duplicated():
    network = build_state_network("A | B", configs(A={"hardware": 0}, B={"hardware": 0}))

    combos = [tuple(es.recovery_states for es in n.elements_states) for n in network.nodes]
    assert len(combos) == len(set(combos)) == 4
    assert [n.state for n in network.nodes] == [
        NetworkNodeState.ACTIVE, NetworkNodeState.ACTIVE,
        NetworkNodeState.TERMINAL, NetworkNodeState.ACTIVE,
    ]


@pytest.mark.parametrize("expression,counts,expected_nodes,expected_edges", [
    ("A & B", {"A": {"hardware": 1}, "B": {"hardware": 1}}, 16, 24),
    ("A", {"A": {"hardware": 1, "software": 1}}, 16, 24),
    ("A | B & C", {"A": {"hardware": 0}, "B": {"software": 0}, "C": {"hardware": 2}}, 24, 44),
])
def test_network_sizes(expression, counts, expected_nodes, expected_edges):
    network = build_state_network(expression, configs(**counts))
    assert len(network.nodes) == expected_nodes
    assert len(network.edges) == expected_edges


def test_enumeration_is_deterministic():
    tree = build_system("(A | B) & C", configs(A={"hardware": 1}, B={"software": 1}, C={"hardware": 1, "software": 0}))
    first = [tuple(n.elements_states) for n in enumerate_states(tree)]
    second = [tuple(n.elements_states) for n in enumerate_states(tree)]
    assert first == second


def test_unbounded_element_is_never_terminal():
    network = build_state_network("A", configs(A={"software": "unbounded"}))

    assert len(network.nodes) == 2
    assert all(n.state != NetworkNodeState.TERMINAL for n in network.nodes)
    assert network.nodes[1].change.change_type == ChangeType.INFINITE_FAILURE
    assert all(es.get(SW).count == 0 for n in network.nodes for es in n.elements_states)


# --- Edge inference ---

def test_single_element_edges():
    network = build_state_network("A", configs(A={"hardware": 1}))
    s0, s1, s2, s3 = network.nodes

    edges = [(e.kind, e.source_node, e.target_node) for e in network.edges]
    assert edges == [
        (EdgeKind.FAILURE, s0, s1),
        (EdgeKind.RECOVERY, s1, s2),
        (EdgeKind.FAILURE, s2, s3),
    ]
    assert all(e.changed_element == (0, HW) for e in network.edges)
    assert network.node("S2") is s2
    assert [e.target_node for e in network.edges_from(s1)] == [s2]


def test_unbounded_failure_adds_reciprocal_recovery():
    network = build_state_network("A", configs(A={"software": "unbounded"}))
    s0, s1 = network.nodes

    assert [(e.kind, e.source_node, e.target_node) for e in network.edges] == [
        (EdgeKind.FAILURE, s0, s1),
        (EdgeKind.RECOVERY, s1, s0),
    ]


def test_edge_direction_does_not_depend_on_node_order():
    a = ElementConfig.from_counts("A", {"hardware": 1})
    up = NetworkNode(0, NetworkNodeState.ACTIVE, (element(a, (0, True)),))
    down = NetworkNode(1, NetworkNodeState.RECOVERY, (element(a, (0, False)),))

    edges = infer_edges([down, up])

    assert len(edges) == 1
    assert edges[0].kind == EdgeKind.FAILURE
    assert edges[0].source_node is up
    assert edges[0].target_node is down


def test_two_element_difference_yields_no_edge():
    cfg = configs(A={"hardware": 1}, B={"hardware": 1})
    a, b = cfg["A"], cfg["B"]
    first = NetworkNode(0, NetworkNodeState.ACTIVE, (element(a, (0, True)), element(b, (0, True))))
    second = NetworkNode(1, NetworkNodeState.RECOVERY, (element(a, (0, False)), element(b, (0, False))))

    assert EdgeInferenceEngine.connect(first, second) == []


def test_failure_with_count_change_yields_no_edge():
    a = ElementConfig.from_counts("A", {"hardware": 2})
    first = NetworkNode(0, NetworkNodeState.ACTIVE, (element(a, (0, True)),))
    second = NetworkNode(1, NetworkNodeState.RECOVERY, (element(a, (1, False)),))

    assert EdgeInferenceEngine.connect(first, second) == []


def test_recovery_must_increment_by_one():
    a = ElementConfig.from_counts("A", {"hardware": 3})
    failed = NetworkNode(0, NetworkNodeState.RECOVERY, (element(a, (0, False)),))
    jumped = NetworkNode(1, NetworkNodeState.ACTIVE, (element(a, (2, True)),))
    recovered = NetworkNode(2, NetworkNodeState.ACTIVE, (element(a, (1, True)),))

    assert EdgeInferenceEngine.connect(failed, jumped) == []
    edges = EdgeInferenceEngine.connect(failed, recovered)
    assert [(e.kind, e.source_node, e.target_node) for e in edges] == [(EdgeKind.RECOVERY, failed, recovered)]


def test_dual_dimension_change_yields_no_edge():
    a = ElementConfig.from_counts("A", {"hardware": 1, "software": 1})
    first = NetworkNode(0, NetworkNodeState.ACTIVE, (element(a, (0, True), (0, True)),))
    second = NetworkNode(1, NetworkNodeState.RECOVERY, (element(a, (0, False), (0, False)),))

    assert EdgeInferenceEngine.connect(first, second) == []


def test_every_edge_is_a_single_atomic_change():
    network = build_state_network("(A | B) & C", configs(A={"hardware": 1}, B={"software": "unbounded"},
                                                        C={"hardware": 1, "software": 1}))
    for edge in network.edges:
        source, target = edge.source_node.elements_states, edge.target_node.elements_states
        index, dimension = edge.changed_element
        diffs = [i for i, (x, y) in enumerate(zip(source, target)) if x != y]
        assert diffs == [index]
        before, after = source[index].get(dimension), target[index].get(dimension)
        assert before.is_active != after.is_active


def test_large_budget_enumerates_without_deep_recursion():
    budget = 600
    network = build_state_network("A", configs(A={"hardware": budget}))

    assert len(network.nodes) == 2 * (budget + 1)
    assert network.nodes[-1].elements_states[0].get(HW) == RecoveryState(budget, False)
    assert network.nodes[-1].state == NetworkNodeState.TERMINAL
    assert len(network.edges) == 2 * budget + 1


def test_enumeration_order_is_depth_first():
    network = build_state_network("A & B", configs(A={"hardware": 1}, B={"hardware": 0}))
    a_states = [n.elements_states[0].get(HW) for n in network.nodes]
    b_states = [n.elements_states[1].get(HW) for n in network.nodes]

    # A runs through its whole chain, B fails beneath each A state on the way back
    assert list(zip(a_states, b_states))[:5] == [
        (RecoveryState(0, True), RecoveryState(0, True)),
        (RecoveryState(0, False), RecoveryState(0, True)),
        (RecoveryState(1, True), RecoveryState(0, True)),
        (RecoveryState(1, False), RecoveryState(0, True)),
        (RecoveryState(1, False), RecoveryState(0, False)),
    ]
    assert len(network.nodes) == 8


# --- Builder ---

def test_builder_reports_progress(capsys):
    network = StateNetworkBuilder(configs(A={"hardware": 0}), verbose=True).build("A")

    out = capsys.readouterr().out
    assert "Leaf order: ['A']" in out
    assert "Enumerated 2 state combinations" in out
    assert network.element_names == ("A",)


def test_builder_is_silent_by_default(capsys):
    build_state_network("A", configs(A={"hardware": 0}))
    assert capsys.readouterr().out == ""
