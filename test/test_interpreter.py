"""
Tests for the DEFCALC environment and evaluator
"""

import math

import pytest
from error_handling import DivisionByZero, DuplicateDefinition, EvalError, UndefinedIdentifier
from interpreter import (
  create_debug_interpreter, create_interpreter, env_bind, env_lookup, eval_expression,
  eval_program, evaluate, make_environment, run
)
from parsing import parse
from syntax import BinaryOp, Definition, Literal, Operator, Program, Reference


class TestEnvironment:
  """Test the append-only environment"""

  def test_starts_empty(self):
    assert make_environment() == {}

  def test_bind_returns_new_environment(self):
    env = make_environment()
    extended = env_bind(env, "a", 1.0)
    assert env == {}
    assert extended == {"a": 1.0}

  def test_bind_preserves_order(self):
    env = env_bind(env_bind(env_bind({}, "z", 1.0), "a", 2.0), "m", 3.0)
    assert list(env) == ["z", "a", "m"]

  def test_rebinding_is_rejected(self):
    env = env_bind({}, "a", 1.0)
    with pytest.raises(DuplicateDefinition) as exc_info:
      env_bind(env, "a", 2.0)
    assert exc_info.value.name == "a"

  def test_lookup(self):
    assert env_lookup({"a": 4.0}, "a") == 4.0

  def test_lookup_missing_name(self):
    with pytest.raises(UndefinedIdentifier) as exc_info:
      env_lookup({"a": 4.0}, "b")
    assert exc_info.value.name == "b"


class TestEvaluator:
  """Test expression and program evaluation"""

  @pytest.fixture
  def interpreter(self):
    return create_interpreter()

  @pytest.mark.parametrize("source,expected", [
      ("123.345", 123.345),
      ("0", 0.0),
      ("123.345 + 1.0", 124.345),
      ("8753.0 - 0.0", 8753.0),
      ("6 * 7", 42.0),
      ("7 / 2", 3.5),
      ("10 + 2 + 3 * 9 - 4", 35.0),
      ("1+2*3", 7.0),
      ("(1+2)*3", 9.0),
      ("10-3-2", 5.0),
      ("100 / 10 / 5", 2.0),
      ("2 * (3 + 4) * 5", 70.0),
  ])
  def test_arithmetic(self, interpreter, source, expected):
    assert interpreter.run(source) == pytest.approx(expected)

  def test_definitions_feed_later_expressions(self, interpreter):
    assert interpreter.run("def a = 5; def b = a*2; a+b") == 15.0

  def test_definition_value_is_computed_once(self, interpreter):
    env, result = interpreter.interpret_program(parse("def a = 2 * 3; def b = a + a; b"))
    assert env == {"a": 6.0, "b": 12.0}
    assert result == 12.0

  def test_environment_follows_source_order(self):
    env, _ = eval_program(parse("def z = 1; def a = 2; def m = 3; 0"))
    assert list(env) == ["z", "a", "m"]

  def test_undefined_identifier(self):
    with pytest.raises(UndefinedIdentifier) as exc_info:
      run("x+1")
    assert exc_info.value.name == "x"
    assert exc_info.value.position.column == 1

  def test_forward_reference_is_undefined(self):
    with pytest.raises(UndefinedIdentifier) as exc_info:
      run("def a = b; def b = 1; a")
    assert exc_info.value.name == "b"

  def test_self_reference_is_undefined(self):
    with pytest.raises(UndefinedIdentifier) as exc_info:
      run("def a = a + 1; a")
    assert exc_info.value.name == "a"

  def test_left_operand_is_evaluated_first(self):
    with pytest.raises(UndefinedIdentifier) as exc_info:
      run("x + y")
    assert exc_info.value.name == "x"

  def test_undefined_identifier_on_later_line(self):
    with pytest.raises(UndefinedIdentifier) as exc_info:
      run("def a = 1;\n  a + b")
    assert exc_info.value.position.line == 2
    assert exc_info.value.position.column == 7

  def test_division_by_zero(self):
    with pytest.raises(DivisionByZero) as exc_info:
      run("1/0")
    assert exc_info.value.position.column == 2

  @pytest.mark.parametrize("source", ["0/0", "1/(2-2)", "1 / 0.0", "def z = 0; 5 / z"])
  def test_division_by_computed_zero(self, source):
    with pytest.raises(DivisionByZero):
      run(source)

  def test_redefinition_is_an_error(self):
    with pytest.raises(DuplicateDefinition) as exc_info:
      run("def a = 1; def a = 2; a")
    assert exc_info.value.name == "a"
    assert exc_info.value.position.column == 16

  def test_errors_share_a_base(self):
    for source in ("x", "1/0", "def a = 1; def a = 1; a"):
      with pytest.raises(EvalError):
        run(source)

  def test_float_semantics(self):
    assert run("0.1 + 0.2") == pytest.approx(0.3)
    assert run("1 / 3") == pytest.approx(1 / 3)

  def test_overflow_gives_infinity(self):
    huge = "1" + "0" * 400
    assert math.isinf(run(huge))
    assert math.isnan(run(f"{huge} - {huge}"))

  def test_long_chain(self):
    source = " + ".join(["1"] * 3000)
    assert run(source) == 3000.0

  def test_deep_right_nested_tree(self):
    # 1 - (1 - (1 - ... (1 - 1)))
    expr = Literal(1.0)
    for _ in range(10000):
      expr = BinaryOp(Operator.SUB, Literal(1.0), expr)
    assert evaluate(Program((), expr)) == 1.0

  def test_deep_tree_reports_undefined_name(self):
    expr = Reference("missing")
    for i in range(5000):
      expr = BinaryOp(Operator.ADD, Literal(float(i)), expr)
    with pytest.raises(UndefinedIdentifier) as exc_info:
      evaluate(Program((), expr))
    assert exc_info.value.name == "missing"

  def test_evaluate_hand_built_program(self):
    program = Program(
        (Definition("w", Literal(4.0)),),
        BinaryOp(Operator.DIV, Reference("w"), Literal(8.0)),
    )
    assert evaluate(program) == 0.5

  def test_hand_built_division_by_zero_has_no_position(self):
    program = Program((), BinaryOp(Operator.DIV, Literal(1.0), Literal(0.0)))
    with pytest.raises(DivisionByZero) as exc_info:
      evaluate(program)
    assert exc_info.value.position is None

  def test_unknown_node_is_an_internal_error(self):
    with pytest.raises(AssertionError):
      eval_expression(object(), {})
    with pytest.raises(AssertionError):
      eval_expression(BinaryOp(Operator.ADD, Literal(1.0), object()), {})

  def test_runs_do_not_share_state(self, interpreter):
    assert interpreter.run("def a = 1; a") == 1.0
    assert interpreter.run("def a = 2; a") == 2.0
    with pytest.raises(UndefinedIdentifier):
      interpreter.run("a")

  def test_debug_interpreter_traces(self, capsys):
    create_debug_interpreter().run("def a = 5; a * 2")
    out = capsys.readouterr().out
    assert "Bound: a = 5.0" in out
    assert "Computed 5.0 * 2.0 = 10.0" in out
    assert "Result: 10.0" in out
