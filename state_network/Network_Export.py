import json
import os
import sys
from typing import Dict, List, Optional, Sequence

import networkx as nx
import numpy as np
import pandas as pd

from state_network.Errors import StateNetworkError
from state_network.State_Space import (
    ElementState, NetworkNode, NetworkNodeState, StateNetwork, build_state_network,
)
from state_network.System_Model import DataLoader


# --- 1. Labels ---

def format_element_state(element: ElementState) -> str:
    """e.g. 'hw+0 sw-1': '+' active, '-' failed, followed by consumed recoveries."""
    short = {"hardware": "hw", "software": "sw"}
    return " ".join(f"{short[d.value]}{'+' if s.is_active else '-'}{s.count}" for d, s in element.items())


def format_node_label(node: NetworkNode, element_names: Sequence[str]) -> str:
    parts = [f"{name}[{format_element_state(es)}]" for name, es in zip(element_names, node.elements_states)]
    return f"{node.name}: " + ", ".join(parts)


def _change_label(node: NetworkNode, element_names: Sequence[str]) -> str:
    if node.change is None:
        return "initial"
    return f"{node.change.change_type.value}:{element_names[node.change.index]}.{node.change.dimension.value}"


def _names(network: StateNetwork, element_names: Optional[Sequence[str]]) -> Sequence[str]:
    return element_names if element_names is not None else network.element_names


# --- 2. Graph & Matrix Views ---

def to_networkx(network: StateNetwork, element_names: Optional[Sequence[str]] = None) -> nx.MultiDiGraph:
    names = _names(network, element_names)
    graph = nx.MultiDiGraph()
    for node in network.nodes:
        graph.add_node(node.name, state=node.state.value,
                       label=format_node_label(node, names),
                       change=_change_label(node, names))
    for edge in network.edges:
        graph.add_edge(edge.source_node.name, edge.target_node.name,
                       kind=edge.kind.value,
                       element=names[edge.changed_element.index],
                       dimension=edge.changed_element.dimension.value)
    return graph


def adjacency_matrix(network: StateNetwork) -> np.ndarray:
    """0/1 matrix with a 1 at [i, j] when some transition leads from node i to node j."""
    size = len(network.nodes)
    matrix = np.zeros((size, size), dtype=np.int8)
    for edge in network.edges:
        matrix[edge.source_node.index, edge.target_node.index] = 1
    return matrix


def state_summary(network: StateNetwork) -> Dict[str, int]:
    return {state.value: sum(1 for n in network.nodes if n.state == state) for state in NetworkNodeState}


# --- 3. Tables ---

def nodes_frame(network: StateNetwork, element_names: Optional[Sequence[str]] = None) -> pd.DataFrame:
    names = _names(network, element_names)
    rows = []
    for node in network.nodes:
        row = {"name": node.name, "state": node.state.value, "change": _change_label(node, names)}
        for index, (name, es) in enumerate(zip(names, node.elements_states)):
            for dimension, rs in es.items():
                # index prefix keeps repeated operand names apart
                row[f"{index}:{name}.{dimension.value}"] = f"{'active' if rs.is_active else 'failed'}({rs.count})"
        rows.append(row)
    return pd.DataFrame(rows)


def edges_frame(network: StateNetwork, element_names: Optional[Sequence[str]] = None) -> pd.DataFrame:
    names = _names(network, element_names)
    rows = [{
        "source": e.source_node.name,
        "target": e.target_node.name,
        "kind": e.kind.value,
        "element": names[e.changed_element.index],
        "dimension": e.changed_element.dimension.value,
    } for e in network.edges]
    return pd.DataFrame(rows, columns=["source", "target", "kind", "element", "dimension"])


# --- 4. JSON ---

def network_to_dict(network: StateNetwork) -> Dict:
    nodes = []
    for node in network.nodes:
        nodes.append({
            "name": node.name,
            "state": node.state.value,
            "change": None if node.change is None else {
                "kind": node.change.change_type.value,
                "index": node.change.index,
                "dimension": node.change.dimension.value,
            },
            "elementsStates": [
                {d.value: {"count": s.count, "isActive": s.is_active} for d, s in es.items()}
                for es in node.elements_states
            ],
        })
    edges = [{
        "kind": e.kind.value,
        "source": e.source_node.name,
        "target": e.target_node.name,
        "changedElement": {"index": e.changed_element.index, "dimension": e.changed_element.dimension.value},
    } for e in network.edges]
    return {"elements": list(network.element_names), "nodes": nodes, "edges": edges}


def save_to_json(network: StateNetwork, output_path: str):
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(network_to_dict(network), f, indent=2)
    print(f"[INFO] State network saved to: {output_path}")


# --- 5. Main Entry Point ---

def run(config_path: str, output_path: str = "state_network.json") -> StateNetwork:
    print("=== Loading Data ===")
    expression, configs = DataLoader.load_system(config_path)
    network = build_state_network(expression, configs, verbose=True)

    print("\n=== Result ===")
    print(f"{len(network.nodes)} nodes, {len(network.edges)} edges, states: {state_summary(network)}")
    save_to_json(network, output_path)
    return network


def main(argv: List[str]) -> int:
    if not argv:
        print("Usage: python -m state_network.Network_Export <system.json> [output.json]")
        return 1
    config_path = argv[0]
    output_path = argv[1] if len(argv) > 1 else "state_network.json"

    if not os.path.exists(config_path):
        print(f"[ERROR] Input file not found: {config_path}")
        return 1
    try:
        run(config_path, output_path)
    except (StateNetworkError, json.JSONDecodeError, UnicodeDecodeError) as e:
        print(f"[ERROR] {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
