"""
DEFCALC abstract syntax tree
Immutable node types plus rendering back to source and to plain data
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
import math
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from error_handling import SourcePosition


class Operator(Enum):
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"

    @property
    def precedence(self) -> int:
        return 2 if self in (Operator.MUL, Operator.DIV) else 1


# Positions are diagnostics only; two trees with the same shape compare equal
# wherever their text came from.

@dataclass(frozen=True)
class Literal:
    value: float
    position: Optional[SourcePosition] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Reference:
    name: str
    position: Optional[SourcePosition] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class BinaryOp:
    """Binary operation; position is the operator's"""
    operator: Operator
    left: 'Expression'
    right: 'Expression'
    position: Optional[SourcePosition] = field(default=None, compare=False, repr=False)


Expression = Union[Literal, Reference, BinaryOp]


@dataclass(frozen=True)
class Definition:
    """`def name = value;` with position pointing at the name"""
    name: str
    value: Expression
    position: Optional[SourcePosition] = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Program:
    definitions: Tuple[Definition, ...]
    result: Expression



# ============================================================================
# TREE WALKING
# ============================================================================

def fold_expression(expr: Expression, leaf: Callable[[Expression], Any],
                    combine: Callable[[BinaryOp, Any, Any], Any]) -> Any:
    """Bottom-up fold over an expression tree, left operand first

    `leaf` maps Literal and Reference nodes, `combine` maps a BinaryOp given
    its folded operands. An explicit stack stands in for Python recursion,
    so long chains and deep nesting both fold in constant Python stack.
    """
    results = []
    stack = [(expr, False)]
    while stack:
        node, operands_done = stack.pop()
        if not isinstance(node, BinaryOp):
            results.append(leaf(node))
        elif operands_done:
            right = results.pop()
            left = results.pop()
            results.append(combine(node, left, right))
        else:
            stack.append((node, True))
            stack.append((node.right, False))
            stack.append((node.left, False))
    return results.pop()


# ============================================================================
# SOURCE RENDERING
# ============================================================================

# Too many digits for a float, so it lexes back to inf
OVERFLOW_LITERAL = "1" + "0" * 309


def format_number(value: float) -> str:
    """Render a literal so that the lexer reads back the same float"""
    if math.isnan(value) or math.copysign(1.0, value) < 0:
        raise ValueError(f"Literal {value!r} has no source form")
    if math.isinf(value):
        return OVERFLOW_LITERAL
    text = repr(value)
    if 'e' in text:
        text = format(Decimal(text), 'f')
    return text


def _leaf_to_source(node: Expression) -> str:
    if isinstance(node, Literal):
        return format_number(node.value)
    if isinstance(node, Reference):
        return node.name
    raise AssertionError(f"Unknown expression node: {node!r}")


def _binary_to_source(node: BinaryOp, left: str, right: str) -> str:
    if isinstance(node.left, BinaryOp) and node.left.operator.precedence < node.operator.precedence:
        left = f"({left})"
    # Left associativity: an equal-precedence right operand needs parentheses
    if isinstance(node.right, BinaryOp) and node.right.operator.precedence <= node.operator.precedence:
        right = f"({right})"
    return f"{left} {node.operator.value} {right}"


def _expression_to_source(expr: Expression) -> str:
    return fold_expression(expr, _leaf_to_source, _binary_to_source)


def to_source(node: Union[Program, Expression]) -> str:
    """Canonical source text for a program or expression"""
    if isinstance(node, Program):
        parts = [f"def {d.name} = {_expression_to_source(d.value)};" for d in node.definitions]
        parts.append(_expression_to_source(node.result))
        return " ".join(parts)
    return _expression_to_source(node)


# ============================================================================
# INSPECTION
# ============================================================================

def _expression_lines(expr: Expression, indent: int) -> List[str]:
    lines = []
    stack = [(expr, indent)]
    while stack:
        node, level = stack.pop()
        prefix = "  " * level
        if isinstance(node, BinaryOp):
            lines.append(f"{prefix}BinaryOp({node.operator.value})")
            stack.append((node.right, level + 1))
            stack.append((node.left, level + 1))
        elif isinstance(node, Literal):
            shown = format_number(node.value) if math.isfinite(node.value) else node.value
            lines.append(f"{prefix}Literal({shown})")
        elif isinstance(node, Reference):
            lines.append(f"{prefix}Reference({node.name})")
        else:
            raise AssertionError(f"Unknown AST node: {node!r}")
    return lines


def pretty_print_ast(node: Union[Program, Definition, Expression], indent: int = 0) -> str:
    """Indented tree view of a program or any node in it"""
    prefix = "  " * indent
    if isinstance(node, Program):
        lines = [f"{prefix}Program"]
        for definition in node.definitions:
            lines.append(pretty_print_ast(definition, indent + 1))
        lines.append(f"{prefix}  Result")
        lines.extend(_expression_lines(node.result, indent + 2))
        return "\n".join(lines)
    if isinstance(node, Definition):
        return "\n".join([f"{prefix}Definition({node.name})"] + _expression_lines(node.value, indent + 1))
    return "\n".join(_expression_lines(node, indent))


def _leaf_to_dict(node: Expression) -> Dict[str, Any]:
    if isinstance(node, Literal):
        return {'type': 'LITERAL', 'value': node.value}
    if isinstance(node, Reference):
        return {'type': 'REFERENCE', 'name': node.name}
    raise AssertionError(f"Unknown AST node: {node!r}")


def _binary_to_dict(node: BinaryOp, left: Dict[str, Any], right: Dict[str, Any]) -> Dict[str, Any]:
    return {'type': 'BINARY_OP', 'operator': node.operator.value, 'left': left, 'right': right}


def ast_to_dict(node: Union[Program, Definition, Expression]) -> Dict[str, Any]:
    """Convert a program or node to plain dictionaries"""
    if isinstance(node, Program):
        return {
            'type': 'PROGRAM',
            'definitions': [ast_to_dict(d) for d in node.definitions],
            'result': ast_to_dict(node.result),
        }
    if isinstance(node, Definition):
        return {'type': 'DEFINITION', 'name': node.name, 'value': ast_to_dict(node.value)}
    return fold_expression(node, _leaf_to_dict, _binary_to_dict)
