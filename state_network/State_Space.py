from enum import Enum
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple

from state_network.Expr_Parser import OperatorToken, parse_expression, tokenize
from state_network.System_Model import (
    ElementConfig, RecoveryDimension, SystemLeaf, SystemNode, bind_system,
    get_leaves, is_unbounded,
)


# --- 1. State Values ---

class NetworkNodeState(Enum):
    ACTIVE = "active"
    RECOVERY = "recovery"
    TERMINAL = "terminal"


class EdgeKind(Enum):
    FAILURE = "failure"
    RECOVERY = "recovery"


class ChangeType(Enum):
    FAILURE = "failure"
    # Failure on an unbounded dimension, resumed through a reciprocal edge
    INFINITE_FAILURE = "infinite_failure"
    RECOVERY = "recovery"


class RecoveryState(NamedTuple):
    count: int
    is_active: bool


class ChangedElement(NamedTuple):
    index: int
    dimension: RecoveryDimension


class StateChange(NamedTuple):
    change_type: ChangeType
    index: int
    dimension: RecoveryDimension

    @property
    def changed_element(self) -> ChangedElement:
        return ChangedElement(self.index, self.dimension)


class ElementState:
    """
    Immutable snapshot of one leaf: a RecoveryState per declared dimension,
    alongside the static budgets of its configuration.
    """

    def __init__(self, config: ElementConfig, recovery_states: Tuple[RecoveryState, ...]):
        self.config = config
        # Aligned with config.dimensions
        self.recovery_states = recovery_states

    @staticmethod
    def initial(config: ElementConfig) -> "ElementState":
        return ElementState(config, tuple(RecoveryState(0, True) for _ in config.dimensions))

    @property
    def dimensions(self) -> Tuple[RecoveryDimension, ...]:
        return self.config.dimensions

    @property
    def recovery_counts(self):
        return self.config.recovery_counts

    def get(self, dimension: RecoveryDimension) -> RecoveryState:
        return self.recovery_states[self.dimensions.index(dimension)]

    def items(self):
        return zip(self.dimensions, self.recovery_states)

    def replace(self, dimension: RecoveryDimension, state: RecoveryState) -> "ElementState":
        position = self.dimensions.index(dimension)
        states = self.recovery_states[:position] + (state,) + self.recovery_states[position + 1:]
        return ElementState(self.config, states)

    def can_recover(self, dimension: RecoveryDimension) -> bool:
        budget = self.config.budget(dimension)
        return is_unbounded(budget) or self.get(dimension).count < budget

    @property
    def is_active(self) -> bool:
        return all(s.is_active for s in self.recovery_states)

    def __eq__(self, other):
        return (isinstance(other, ElementState) and other.config == self.config
                and other.recovery_states == self.recovery_states)

    def __hash__(self):
        return hash((self.config.name, self.recovery_states))

    def __repr__(self):
        parts = ", ".join(f"{d.value}={'up' if s.is_active else 'down'}/{s.count}" for d, s in self.items())
        return f"ElementState({self.config.name}: {parts})"


class NetworkNode:
    def __init__(self, index: int, state: NetworkNodeState,
                 elements_states: Tuple[ElementState, ...], change: Optional[StateChange] = None):
        self.index = index
        self.name = f"S{index}"
        self.state = state
        self.elements_states = elements_states
        # None for the initial all-active node
        self.change = change

    def __repr__(self):
        return f"NetworkNode({self.name}, {self.state.value})"


class NetworkEdge:
    def __init__(self, kind: EdgeKind, source_node: NetworkNode, target_node: NetworkNode,
                 changed_element: ChangedElement):
        self.kind = kind
        self.source_node = source_node
        self.target_node = target_node
        self.changed_element = changed_element

    def __repr__(self):
        return (f"NetworkEdge({self.kind.value}: {self.source_node.name} -> {self.target_node.name}, "
                f"element={self.changed_element.index}, {self.changed_element.dimension.value})")


class StateNetwork:
    def __init__(self, nodes: List[NetworkNode], edges: List[NetworkEdge], element_names: List[str]):
        self.nodes = tuple(nodes)
        self.edges = tuple(edges)
        self.element_names = tuple(element_names)

    def node(self, name: str) -> NetworkNode:
        return self.nodes[int(name[1:])]

    def edges_from(self, node: NetworkNode) -> List[NetworkEdge]:
        return [e for e in self.edges if e.source_node is node]

    def __repr__(self):
        return f"StateNetwork(nodes={len(self.nodes)}, edges={len(self.edges)})"


# --- 2. Classification ---

class StateClassifier:
    @staticmethod
    def classify_element(element: ElementState) -> NetworkNodeState:
        if element.is_active:
            return NetworkNodeState.ACTIVE
        failed = [d for d, s in element.items() if not s.is_active]
        if all(element.can_recover(d) for d in failed):
            return NetworkNodeState.RECOVERY
        return NetworkNodeState.TERMINAL

    @staticmethod
    def classify(node: SystemNode, elements_states: Tuple[ElementState, ...]) -> NetworkNodeState:
        if isinstance(node, SystemLeaf):
            return StateClassifier.classify_element(elements_states[node.index])

        left = StateClassifier.classify(node.left, elements_states)
        right = StateClassifier.classify(node.right, elements_states)
        children = (left, right)

        # AND: series, weakest child wins
        if node.value == OperatorToken.AND.value:
            if NetworkNodeState.TERMINAL in children:
                return NetworkNodeState.TERMINAL
            if NetworkNodeState.RECOVERY in children:
                return NetworkNodeState.RECOVERY
            return NetworkNodeState.ACTIVE

        # OR: redundancy, strongest child wins
        if NetworkNodeState.ACTIVE in children:
            return NetworkNodeState.ACTIVE
        if NetworkNodeState.RECOVERY in children:
            return NetworkNodeState.RECOVERY
        return NetworkNodeState.TERMINAL


# --- 3. State-Space Enumeration ---

def atomic_changes(element: ElementState) -> List[Tuple[ChangeType, RecoveryDimension, ElementState]]:
    """
    Every single-step change available to one leaf, failures before
    recoveries, each group in the dimension order of the configuration.
    """
    changes = []
    for dimension, state in element.items():
        if state.is_active:
            budget = element.config.budget(dimension)
            change_type = ChangeType.INFINITE_FAILURE if is_unbounded(budget) else ChangeType.FAILURE
            changes.append((change_type, dimension,
                            element.replace(dimension, RecoveryState(state.count, False))))
    for dimension, state in element.items():
        budget = element.config.budget(dimension)
        if not state.is_active and not is_unbounded(budget) and state.count < budget:
            changes.append((ChangeType.RECOVERY, dimension,
                            element.replace(dimension, RecoveryState(state.count + 1, True))))
    return changes


class StateSpaceEnumerator:
    """
    Depth-first exploration of every reachable leaf-state combination.
    Each new combination becomes one NetworkNode; combinations reached
    again along another path are not emitted twice.
    """

    def __init__(self, tree: SystemNode):
        self.tree = tree
        self.leaves = get_leaves(tree)

    @staticmethod
    def _successors(states: Tuple[ElementState, ...]) -> Iterator[Tuple[Tuple[ElementState, ...], StateChange]]:
        for index in range(len(states)):
            for change_type, dimension, element in atomic_changes(states[index]):
                yield states[:index] + (element,) + states[index + 1:], StateChange(change_type, index, dimension)

    def enumerate(self) -> List[NetworkNode]:
        nodes: List[NetworkNode] = []
        seen = set()

        def record(states, change):
            nodes.append(NetworkNode(len(nodes), StateClassifier.classify(self.tree, states), states, change))
            seen.add(states)

        initial = tuple(ElementState.initial(leaf.config) for leaf in self.leaves)
        record(initial, None)

        # Explicit stack of pending-change iterators, one per open state
        stack = [self._successors(initial)]
        while stack:
            step = next(stack[-1], None)
            if step is None:
                stack.pop()
                continue
            next_states, change = step
            if next_states in seen:
                continue
            record(next_states, change)
            stack.append(self._successors(next_states))
        return nodes


def enumerate_states(tree: SystemNode) -> List[NetworkNode]:
    return StateSpaceEnumerator(tree).enumerate()


# --- 4. Edge Inference ---

class EdgeInferenceEngine:
    @staticmethod
    def single_difference(a: Tuple[ElementState, ...], b: Tuple[ElementState, ...]) -> Optional[ChangedElement]:
        """The one (leaf, dimension) where a and b differ, or None."""
        found = None
        for index, (left, right) in enumerate(zip(a, b)):
            if left == right:
                continue
            for dimension in left.dimensions:
                if left.get(dimension) != right.get(dimension):
                    if found is not None:
                        return None
                    found = ChangedElement(index, dimension)
        return found

    @staticmethod
    def is_failure(before: RecoveryState, after: RecoveryState) -> bool:
        return before.is_active and not after.is_active and before.count == after.count

    @staticmethod
    def is_recovery(before: RecoveryState, after: RecoveryState) -> bool:
        return not before.is_active and after.is_active and after.count == before.count + 1

    @staticmethod
    def connect(a: NetworkNode, b: NetworkNode) -> List[NetworkEdge]:
        changed = EdgeInferenceEngine.single_difference(a.elements_states, b.elements_states)
        if changed is None:
            return []

        state_a = a.elements_states[changed.index].get(changed.dimension)
        state_b = b.elements_states[changed.index].get(changed.dimension)

        matches = []
        for source, target, before, after in ((a, b, state_a, state_b), (b, a, state_b, state_a)):
            if EdgeInferenceEngine.is_failure(before, after):
                matches.append((EdgeKind.FAILURE, source, target))
            if EdgeInferenceEngine.is_recovery(before, after):
                matches.append((EdgeKind.RECOVERY, source, target))
        if len(matches) != 1:
            return []

        kind, source, target = matches[0]
        edges = [NetworkEdge(kind, source, target, changed)]
        budget = source.elements_states[changed.index].config.budget(changed.dimension)
        if kind == EdgeKind.FAILURE and is_unbounded(budget):
            edges.append(NetworkEdge(EdgeKind.RECOVERY, target, source, changed))
        return edges

    @staticmethod
    def infer_edges(nodes: List[NetworkNode]) -> List[NetworkEdge]:
        edges = []
        for i, a in enumerate(nodes):
            for b in nodes[i + 1:]:
                edges.extend(EdgeInferenceEngine.connect(a, b))
        return edges


def infer_edges(nodes: List[NetworkNode]) -> List[NetworkEdge]:
    return EdgeInferenceEngine.infer_edges(nodes)


# --- 5. Pipeline ---

class StateNetworkBuilder:
    def __init__(self, configs: Dict[str, ElementConfig], verbose: bool = False):
        self.configs = configs
        self.verbose = verbose

    def _log(self, message: str):
        if self.verbose:
            print(message)

    def build(self, expression: str) -> StateNetwork:
        self._log(f"\n=== Building State Network for '{expression}' ===")
        self._log(f"[INFO] Tokens: {tokenize(expression)}")

        tree = bind_system(parse_expression(expression), self.configs)
        leaves = get_leaves(tree)
        self._log(f"[INFO] Leaf order: {[leaf.name for leaf in leaves]}")

        nodes = enumerate_states(tree)
        self._log(f"[INFO] Enumerated {len(nodes)} state combinations")

        edges = infer_edges(nodes)
        self._log(f"[INFO] Inferred {len(edges)} transitions")

        if self.verbose:
            for state in NetworkNodeState:
                total = sum(1 for n in nodes if n.state == state)
                print(f"  [{state.value}] {total}")

        return StateNetwork(nodes, edges, [leaf.name for leaf in leaves])


def build_state_network(expression: str, configs: Dict[str, ElementConfig], verbose: bool = False) -> StateNetwork:
    return StateNetworkBuilder(configs, verbose).build(expression)
