"""
DEFCALC Interpreter - Pure Functional Style
Evaluates programs against an append-only environment of computed values
"""

from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union
import operator

import pykka

from error_handling import (
  DivisionByZero, DuplicateDefinition, RunError, SourcePosition, UndefinedIdentifier
)
from parsing import create_parser
from syntax import BinaryOp, Expression, Literal, Operator, Program, Reference, fold_expression


Environment = Dict[str, float]

BUILTIN_OPERATORS: Dict[Operator, Callable[[float, float], float]] = {
    Operator.ADD: operator.add,
    Operator.SUB: operator.sub,
    Operator.MUL: operator.mul,
    Operator.DIV: operator.truediv,
}


# ============================================================================
# ENVIRONMENT OPERATIONS (Pure Functions)
# ============================================================================

def make_environment() -> Environment:
  """Create an empty environment"""
  return {}


def env_bind(env: Environment, name: str, value: float,
             position: Optional[SourcePosition] = None) -> Environment:
  """Return new environment with name bound to value; names bind once"""
  if name in env:
    raise DuplicateDefinition(name, position)
  return {**env, name: value}


def env_lookup(env: Environment, name: str, position: Optional[SourcePosition] = None) -> float:
  """Look up a name bound by an earlier definition"""
  if name not in env:
    raise UndefinedIdentifier(name, position)
  return env[name]


# ============================================================================
# EXPRESSION EVALUATION
# ============================================================================

def apply_operator(node: BinaryOp, left: float, right: float) -> float:
  if node.operator is Operator.DIV and right == 0:
    raise DivisionByZero(node.position)
  return BUILTIN_OPERATORS[node.operator](left, right)


def eval_literal(node: Literal, env: Environment, debug: bool = False) -> float:
  return node.value


def eval_reference(node: Reference, env: Environment, debug: bool = False) -> float:
  value = env_lookup(env, node.name, node.position)
  if debug:
    print(f"Resolved {node.name} = {value}")
  return value


def eval_binary_op(node: BinaryOp, env: Environment, debug: bool = False) -> float:
  """Evaluate an operator tree, left operand first, without one Python frame per node"""

  def combine(op_node: BinaryOp, left: float, right: float) -> float:
    result = apply_operator(op_node, left, right)
    if debug:
      print(f"Computed {left} {op_node.operator.value} {right} = {result}")
    return result

  return fold_expression(node, lambda leaf: eval_expression(leaf, env, debug), combine)


EVALUATORS = {
    Literal: eval_literal,
    Reference: eval_reference,
    BinaryOp: eval_binary_op,
}


def eval_expression(node: Expression, env: Environment, debug: bool = False) -> float:
  """Evaluate any expression node"""
  handler = EVALUATORS.get(type(node))
  if handler is None:
    raise AssertionError(f"Unknown expression node: {node!r}")
  return handler(node, env, debug)


# ============================================================================
# PROGRAM EVALUATION
# ============================================================================

def eval_program(program: Program, debug: bool = False) -> Tuple[Environment, float]:
  """Evaluate definitions in source order, then the result expression"""
  env = make_environment()

  for definition in program.definitions:
    value = eval_expression(definition.value, env, debug)
    env = env_bind(env, definition.name, value, definition.position)
    if debug:
      print(f"Bound: {definition.name} = {value}")

  result = eval_expression(program.result, env, debug)
  if debug:
    print(f"Result: {result}")
  return env, result


def evaluate(program: Program, debug: bool = False) -> float:
  _, result = eval_program(program, debug)
  return result


def run(source: str, filename: str = "<input>", debug: bool = False) -> float:
  """Tokenize, parse and evaluate source text"""
  program = create_parser(debug).parse_string(source, filename)
  return evaluate(program, debug)


# ============================================================================
# FACTORY FUNCTIONS
# ============================================================================

class CalcInterpreter:
  """Interpreter object for hosts that keep one around"""

  def __init__(self, debug: bool = False):
    self.debug = debug

  def evaluate(self, program: Program) -> float:
    return evaluate(program, self.debug)

  def interpret_program(self, program: Program) -> Tuple[Environment, float]:
    return eval_program(program, self.debug)

  def run(self, source: str, filename: str = "<input>") -> float:
    return run(source, filename, self.debug)


def create_interpreter(debug: bool = False) -> CalcInterpreter:
  """Factory function returning an interpreter"""
  return CalcInterpreter(debug)


def create_debug_interpreter() -> CalcInterpreter:
  """Factory function returning a debug interpreter"""
  return create_interpreter(debug=True)


# ============================================================================
# ACTOR SYSTEM (Using Pykka)
# ============================================================================

class CalculatorActor(pykka.ThreadingActor):
  """Actor that runs one isolated program per message

  Messages are dicts with a 'source' key and an optional 'filename'. A
  RunError raised by the program is re-raised to the asker by pykka.
  """

  def __init__(self, debug: bool = False):
    super().__init__()
    self.debug = debug

  def on_receive(self, message):
    if not isinstance(message, dict) or 'source' not in message:
      raise ValueError(f"Expected a message with a 'source' key, got {message!r}")
    return run(message['source'], message.get('filename', "<input>"), self.debug)


def run_many(sources: Sequence[str], pool_size: int = 4, timeout: Optional[float] = None,
             debug: bool = False) -> List[Union[float, RunError]]:
  """Run independent programs on a pool of actors

  Returns, in input order, each program's value or the RunError it raised.
  """
  if not sources:
    return []

  actors = [CalculatorActor.start(debug) for _ in range(max(1, min(pool_size, len(sources))))]
  try:
    futures = [
        actors[i % len(actors)].ask({'source': source, 'filename': f"<input {i}>"}, block=False)
        for i, source in enumerate(sources)
    ]
    results: List[Union[float, RunError]] = []
    for future in futures:
      try:
        results.append(future.get(timeout=timeout))
      except RunError as e:
        results.append(e)
    return results
  finally:
    for actor in actors:
      actor.stop()
