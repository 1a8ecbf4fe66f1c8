import json
import math
from enum import Enum
from typing import Dict, Iterator, List, Tuple, Union

from state_network.Errors import InvalidConfigurationError, UnknownElementError
from state_network.Expr_Parser import AstNode, Operand, Operator, parse_expression


# --- 1. Recovery Dimensions & Budgets ---

class RecoveryDimension(Enum):
    HARDWARE = "hardware"
    SOFTWARE = "software"


# A budget is a non-negative int or UNBOUNDED
UNBOUNDED = math.inf

Budget = Union[int, float]

UNBOUNDED_LITERALS = {"unbounded", "infinite", "infinity", "inf"}


def is_unbounded(budget: Budget) -> bool:
    return budget == UNBOUNDED


def parse_budget(name: str, value) -> Budget:
    if value is None:
        return UNBOUNDED
    if isinstance(value, str):
        if value.strip().lower() in UNBOUNDED_LITERALS:
            return UNBOUNDED
        raise InvalidConfigurationError(name, f"unrecognised budget '{value}'")
    if isinstance(value, bool):
        raise InvalidConfigurationError(name, f"budget must be a number, got {value!r}")
    if isinstance(value, float):
        if math.isinf(value) and value > 0:
            return UNBOUNDED
        if not value.is_integer():
            raise InvalidConfigurationError(name, f"budget must be a whole number, got {value}")
        value = int(value)
    if not isinstance(value, int):
        raise InvalidConfigurationError(name, f"budget must be a number, got {value!r}")
    if value < 0:
        raise InvalidConfigurationError(name, f"budget must be non-negative, got {value}")
    return value


def format_budget(budget: Budget) -> str:
    return "unbounded" if is_unbounded(budget) else str(budget)


# --- 2. Element Configurations ---

class ElementConfig:
    """
    Recovery budgets of one element. Concrete variants fix which
    dimensions exist: HardwareOnlyConfig, SoftwareOnlyConfig, DualConfig.
    """
    dimensions: Tuple[RecoveryDimension, ...] = ()

    def __init__(self, name: str):
        self.name = name
        self.recovery_counts: Dict[RecoveryDimension, Budget] = {}

    def budget(self, dimension: RecoveryDimension) -> Budget:
        return self.recovery_counts[dimension]

    @staticmethod
    def from_counts(name: str, counts: Dict) -> "ElementConfig":
        if not isinstance(counts, dict):
            raise InvalidConfigurationError(name, "recovery counts must be a mapping")

        parsed = {}
        for key, value in counts.items():
            try:
                dimension = key if isinstance(key, RecoveryDimension) else RecoveryDimension(str(key).lower())
            except ValueError:
                raise InvalidConfigurationError(name, f"unknown recovery dimension '{key}'")
            parsed[dimension] = parse_budget(name, value)

        hardware = parsed.get(RecoveryDimension.HARDWARE)
        software = parsed.get(RecoveryDimension.SOFTWARE)
        has_hardware = RecoveryDimension.HARDWARE in parsed
        has_software = RecoveryDimension.SOFTWARE in parsed

        if has_hardware and has_software:
            return DualConfig(name, hardware, software)
        if has_hardware:
            return HardwareOnlyConfig(name, hardware)
        if has_software:
            return SoftwareOnlyConfig(name, software)
        raise InvalidConfigurationError(name, "declares neither hardware nor software recovery")

    def __eq__(self, other):
        return (type(other) is type(self) and other.name == self.name
                and other.recovery_counts == self.recovery_counts)

    def __hash__(self):
        return hash((type(self).__name__, self.name, tuple(self.recovery_counts.items())))

    def __repr__(self):
        counts = ", ".join(f"{d.value}={format_budget(b)}" for d, b in self.recovery_counts.items())
        return f"{type(self).__name__}({self.name!r}, {counts})"


class HardwareOnlyConfig(ElementConfig):
    dimensions = (RecoveryDimension.HARDWARE,)

    def __init__(self, name: str, hardware: Budget):
        super().__init__(name)
        self.recovery_counts = {RecoveryDimension.HARDWARE: hardware}


class SoftwareOnlyConfig(ElementConfig):
    dimensions = (RecoveryDimension.SOFTWARE,)

    def __init__(self, name: str, software: Budget):
        super().__init__(name)
        self.recovery_counts = {RecoveryDimension.SOFTWARE: software}


class DualConfig(ElementConfig):
    # Order fixes the failure branching priority: hardware first
    dimensions = (RecoveryDimension.HARDWARE, RecoveryDimension.SOFTWARE)

    def __init__(self, name: str, hardware: Budget, software: Budget):
        super().__init__(name)
        self.recovery_counts = {
            RecoveryDimension.HARDWARE: hardware,
            RecoveryDimension.SOFTWARE: software,
        }


# --- 3. System Tree ---

class SystemLeaf:
    def __init__(self, name: str, config: ElementConfig, index: int):
        self.name = name
        self.config = config
        # Position in the leaf order, i.e. in every elements_states tuple
        self.index = index

    def __repr__(self):
        return f"SystemLeaf({self.name!r}, index={self.index})"


class SystemOperator:
    def __init__(self, value: str, left: "SystemNode", right: "SystemNode"):
        self.value = value
        self.left = left
        self.right = right

    def __repr__(self):
        return f"SystemOperator({self.value!r}, {self.left!r}, {self.right!r})"


SystemNode = Union[SystemLeaf, SystemOperator]


def iter_leaves(node) -> Iterator:
    """
    Post-order walk that yields operand leaves as soon as they are reached.
    Works on both AST and system trees; the result is the left-to-right
    operand order of the source expression.
    """
    if isinstance(node, (Operator, SystemOperator)):
        yield from iter_leaves(node.left)
        yield from iter_leaves(node.right)
    else:
        yield node


def bind_system(ast: AstNode, configs: Dict[str, ElementConfig]) -> SystemNode:
    counter = [0]

    def bind(node: AstNode) -> SystemNode:
        if isinstance(node, Operand):
            config = configs.get(node.value)
            if config is None:
                raise UnknownElementError(node.value)
            if not config.dimensions:
                raise InvalidConfigurationError(node.value, "declares neither hardware nor software recovery")
            leaf = SystemLeaf(node.value, config, counter[0])
            counter[0] += 1
            return leaf
        return SystemOperator(node.value, bind(node.left), bind(node.right))

    return bind(ast)


def build_system(expression: str, configs: Dict[str, ElementConfig]) -> SystemNode:
    return bind_system(parse_expression(expression), configs)


def get_leaves(tree: SystemNode) -> List[SystemLeaf]:
    return list(iter_leaves(tree))


def element_labels(tree: SystemNode) -> List[str]:
    return [leaf.name for leaf in iter_leaves(tree)]


# --- 4. Data Loading ---

class DataLoader:
    @staticmethod
    def parse_element_configs(data: Dict) -> Dict[str, ElementConfig]:
        if not isinstance(data, dict):
            raise InvalidConfigurationError("<root>", "element configuration must be a JSON object")
        elements = data
        wrapped = data.get("elements")
        # Unwrap only {"elements": {name: counts}}; a bare mapping may name an element "elements"
        if isinstance(wrapped, dict) and all(isinstance(c, dict) for c in wrapped.values()):
            elements = wrapped
        if not isinstance(elements, dict):
            raise InvalidConfigurationError("<root>", "'elements' must be a JSON object")
        return {name: ElementConfig.from_counts(name, counts) for name, counts in elements.items()}

    @staticmethod
    def load_element_configs(json_path: str) -> Dict[str, ElementConfig]:
        with open(json_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        configs = DataLoader.parse_element_configs(data)
        print(f"[INFO] Loaded {len(configs)} element configurations from {json_path}")
        return configs

    @staticmethod
    def load_system(json_path: str) -> Tuple[str, Dict[str, ElementConfig]]:
        with open(json_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        if not isinstance(data, dict) or not isinstance(data.get("expression"), str):
            raise InvalidConfigurationError("<root>", "system file needs a string 'expression'")
        if "elements" not in data:
            raise InvalidConfigurationError("<root>", "system file needs an 'elements' mapping")
        configs = DataLoader.parse_element_configs({"elements": data["elements"]})
        print(f"[INFO] Loaded system '{data['expression']}' with {len(configs)} elements from {json_path}")
        return data["expression"], configs
