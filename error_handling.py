"""
Error handling for the DEFCALC front end
Error taxonomy, source positions and pure-function error formatting
"""

from dataclasses import dataclass
from typing import List, Optional

from pyparsing import col, lineno


# ============================================================================
# SOURCE POSITIONS
# ============================================================================

@dataclass(frozen=True)
class SourcePosition:
    """Location of a character or token in the source text"""
    filename: str
    offset: int
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.filename}:{self.line}:{self.column}"


def position_at(source: str, offset: int, filename: str = "<input>") -> SourcePosition:
    """Build a position for a character offset (1-based line and column)"""
    return SourcePosition(filename, offset, lineno(offset, source), col(offset, source))


# ============================================================================
# ERROR TAXONOMY
# ============================================================================

class RunError(Exception):
    """Base class of every error the lexer, parser or evaluator raises"""
    stage = "run"

    def __init__(self, message: str, position: Optional[SourcePosition] = None):
        self.message = message
        self.position = position
        super().__init__(self._format_error())

    def _format_error(self) -> str:
        if self.position:
            return f"{self.stage.capitalize()} error at {self.position}: {self.message}"
        return f"{self.stage.capitalize()} error: {self.message}"


class LexError(RunError):
    stage = "lex"


class UnrecognizedCharacter(LexError):
    """A character that can not start any token"""

    def __init__(self, char: str, position: SourcePosition):
        self.char = char
        super().__init__(f"unrecognized character {char!r} (U+{ord(char):04X})", position)


class ParseError(RunError):
    stage = "parse"


class ExpectedToken(ParseError):
    """The parser needed one kind of token and found another"""

    def __init__(self, expected: str, found: str, position: SourcePosition):
        self.expected = expected
        self.found = found
        super().__init__(f"expected {expected}, found {found}", position)


class UnexpectedEndOfInput(ParseError):
    """Input ended while a construct was still open"""

    def __init__(self, position: SourcePosition, expected: Optional[str] = None):
        self.expected = expected
        message = "unexpected end of input"
        if expected:
            message += f", expected {expected}"
        super().__init__(message, position)


class TrailingTokensAfterProgram(ParseError):
    """Tokens left over after the final expression"""

    def __init__(self, found: str, position: SourcePosition):
        self.found = found
        super().__init__(f"unexpected {found} after the final expression", position)


class NestingTooDeep(ParseError):
    """A '(' opened more groups than the parser allows"""

    def __init__(self, limit: int, position: SourcePosition):
        self.limit = limit
        super().__init__(f"parentheses nested more than {limit} deep", position)


class EvalError(RunError):
    stage = "evaluation"


class UndefinedIdentifier(EvalError):

    def __init__(self, name: str, position: Optional[SourcePosition]):
        self.name = name
        super().__init__(f"undefined identifier '{name}'", position)


class DivisionByZero(EvalError):

    def __init__(self, position: Optional[SourcePosition]):
        super().__init__("division by zero", position)


class DuplicateDefinition(EvalError):
    """A definition tried to bind a name that is already bound"""

    def __init__(self, name: str, position: Optional[SourcePosition]):
        self.name = name
        super().__init__(f"'{name}' is already defined", position)


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def get_context_lines(source_text: str, line_num: int, col_num: int, context_lines: int = 2) -> str:
    """Get context lines around the error"""
    lines = source_text.split('\n')
    start_line = max(0, line_num - context_lines - 1)
    end_line = min(len(lines), line_num + context_lines)

    context_parts = []
    for i in range(start_line, end_line):
        line_prefix = f"{i+1:4d}: "
        context_parts.append(f"{line_prefix}{lines[i]}")
        if i == line_num - 1:
            context_parts.append(f"{'':6}{' ' * (col_num - 1)}^")

    return '\n'.join(context_parts)


def generate_suggestions(error: RunError) -> List[str]:
    """Generate hints for the common mistakes"""
    suggestions = []

    if isinstance(error, ExpectedToken) and error.found == "'def'":
        suggestions.append("'def' is reserved and can not be used as a name")

    if isinstance(error, (ExpectedToken, UnexpectedEndOfInput)) and error.expected == "';'":
        suggestions.append("Every definition ends with ';'")

    if isinstance(error, TrailingTokensAfterProgram) and error.found == "'def'":
        suggestions.append("Definitions must come before the final expression")

    if isinstance(error, NestingTooDeep):
        suggestions.append("Split the expression into definitions")

    if isinstance(error, UndefinedIdentifier):
        suggestions.append("Names can only refer to definitions that appear earlier")

    return suggestions


def format_error(error: RunError, source_text: Optional[str] = None) -> str:
    """Format an error with its source context and hints"""
    message = str(error)
    if source_text is not None and error.position is not None:
        message += "\n" + get_context_lines(source_text, error.position.line, error.position.column)

    suggestions = generate_suggestions(error)
    if suggestions:
        message += "\n  Suggestions:"
        for suggestion in suggestions:
            message += f"\n    - {suggestion}"

    return message


class ErrorReporter:
    """Renders errors against the source they came from"""

    def __init__(self, source_text: str, filename: str = "<input>"):
        self.source_text = source_text
        self.filename = filename

    def render(self, error: RunError) -> str:
        return format_error(error, self.source_text)
