import re
from enum import Enum
from typing import List, Union

from state_network.Errors import MalformedExpressionError


# --- 1. Token Definitions ---

class OperatorToken(Enum):
    AND = "&"
    OR = "|"


class GroupToken(Enum):
    OPENING = "("
    CLOSING = ")"


# Higher binds tighter; both operators are left-associative
PRECEDENCE = {
    OperatorToken.OR.value: 1,
    OperatorToken.AND.value: 2,
}

OPERATOR_CHARS = {t.value for t in OperatorToken}
GROUP_CHARS = {t.value for t in GroupToken}


def is_operator_token(token: str) -> bool:
    return token in OPERATOR_CHARS


def is_group_token(token: str) -> bool:
    return token in GROUP_CHARS


def is_operand_token(token: str) -> bool:
    return not is_operator_token(token) and not is_group_token(token)


# --- 2. AST Nodes ---

class Operand:
    def __init__(self, value: str):
        self.value = value

    def __eq__(self, other):
        return isinstance(other, Operand) and other.value == self.value

    def __hash__(self):
        return hash(("operand", self.value))

    def __repr__(self):
        return f"Operand({self.value!r})"


class Operator:
    def __init__(self, value: str, left: "AstNode", right: "AstNode"):
        self.value = value
        self.left = left
        self.right = right

    def __eq__(self, other):
        return (isinstance(other, Operator) and other.value == self.value
                and other.left == self.left and other.right == self.right)

    def __hash__(self):
        return hash(("operator", self.value, self.left, self.right))

    def __repr__(self):
        return f"Operator({self.value!r}, {self.left!r}, {self.right!r})"


AstNode = Union[Operand, Operator]


# --- 3. Tokenizer ---

def remove_spaces(expression: str) -> str:
    return re.sub(r"\s+", "", expression)


def tokenize(expression: str) -> List[str]:
    """
    Split an expression into operand names, operators and parentheses.
    Whitespace is dropped before scanning, so it never ends up inside a name.
    """
    tokens = []
    pending = ""
    for char in remove_spaces(expression):
        if is_operator_token(char) or is_group_token(char):
            if pending:
                tokens.append(pending)
                pending = ""
            tokens.append(char)
        else:
            pending += char
    if pending:
        tokens.append(pending)
    return tokens


def get_element_names_from_tokens(tokens: List[str]) -> List[str]:
    return [t for t in tokens if is_operand_token(t)]


# --- 4. Shunting-Yard ---

def to_postfix(tokens: List[str]) -> List[str]:
    output = []
    # (token, index in the infix sequence) so unmatched groups can be reported
    stack = []

    for index, token in enumerate(tokens):
        if is_operator_token(token):
            while (stack and is_operator_token(stack[-1][0])
                   and PRECEDENCE[token] <= PRECEDENCE[stack[-1][0]]):
                output.append(stack.pop()[0])
            stack.append((token, index))
        elif token == GroupToken.OPENING.value:
            stack.append((token, index))
        elif token == GroupToken.CLOSING.value:
            while stack and stack[-1][0] != GroupToken.OPENING.value:
                output.append(stack.pop()[0])
            if not stack:
                raise MalformedExpressionError("Unmatched closing parenthesis", index)
            stack.pop()
        else:
            output.append(token)

    while stack:
        token, index = stack.pop()
        if token == GroupToken.OPENING.value:
            raise MalformedExpressionError("Unclosed opening parenthesis", index)
        output.append(token)

    return output


# --- 5. AST Builder ---

def postfix_to_ast(postfix_tokens: List[str]) -> AstNode:
    stack: List[AstNode] = []

    for index, token in enumerate(postfix_tokens):
        if is_operator_token(token):
            if len(stack) < 2:
                raise MalformedExpressionError(
                    f"Operator '{token}' is missing an operand", index)
            right = stack.pop()
            left = stack.pop()
            stack.append(Operator(token, left, right))
        else:
            stack.append(Operand(token))

    if not stack:
        raise MalformedExpressionError("Expression is empty")
    if len(stack) > 1:
        raise MalformedExpressionError(
            f"Expression does not reduce to a single root ({len(stack)} dangling operands)")
    return stack[0]


def parse_expression(expression: str) -> AstNode:
    tokens = tokenize(expression)
    if not tokens:
        raise MalformedExpressionError("Expression is empty")
    return postfix_to_ast(to_postfix(tokens))


def to_infix(node: AstNode) -> str:
    """Render an AST back to text, parenthesising every operator node."""
    if isinstance(node, Operand):
        return node.value
    return f"({to_infix(node.left)} {node.value} {to_infix(node.right)})"
