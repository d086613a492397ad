"""
DEFCALC Parser
Hand-written tokenizer and recursive-descent parser, plus a declarative
pyparsing grammar of the same language used as a reference recognizer
"""

from dataclasses import dataclass
from enum import Enum
from functools import reduce
from pathlib import Path
from typing import Any, List, Sequence, Union
import unicodedata

from pyparsing import (
    Forward, OpAssoc, ParseException, Regex, StringEnd, Suppress, ZeroOrMore,
    infix_notation, one_of
)

from error_handling import (
    ExpectedToken, NestingTooDeep, SourcePosition, TrailingTokensAfterProgram,
    UnexpectedEndOfInput, UnrecognizedCharacter, position_at
)
from syntax import BinaryOp, Definition, Expression, Literal, Operator, Program, Reference


KEYWORD_DEF = "def"

# Each open group costs the parser a handful of Python frames
MAX_NESTING_DEPTH = 100

# Unicode White_Space; str.isspace() also accepts the U+001C-U+001F separators
WHITESPACE = frozenset(
    "\t\n\x0b\x0c\r \x85\xa0\u1680"
    "\u2000\u2001\u2002\u2003\u2004\u2005\u2006\u2007\u2008\u2009\u200a"
    "\u2028\u2029\u202f\u205f\u3000"
)


class TokenKind(Enum):
    NUMBER = "number"
    IDENTIFIER = "identifier"
    PLUS = "'+'"
    MINUS = "'-'"
    STAR = "'*'"
    SLASH = "'/'"
    EQUALS = "'='"
    SEMICOLON = "';'"
    LPAREN = "'('"
    RPAREN = "')'"
    EOF = "end of input"


PUNCTUATION = {
    '+': TokenKind.PLUS,
    '-': TokenKind.MINUS,
    '*': TokenKind.STAR,
    '/': TokenKind.SLASH,
    '=': TokenKind.EQUALS,
    ';': TokenKind.SEMICOLON,
    '(': TokenKind.LPAREN,
    ')': TokenKind.RPAREN,
}

OPERATORS = {
    TokenKind.PLUS: Operator.ADD,
    TokenKind.MINUS: Operator.SUB,
    TokenKind.STAR: Operator.MUL,
    TokenKind.SLASH: Operator.DIV,
}


@dataclass(frozen=True)
class Token:
    """DEFCALC token with source information"""
    kind: TokenKind
    value: Any
    position: SourcePosition
    text: str = ""

    def describe(self) -> str:
        """Human-readable form for error messages"""
        if self.kind == TokenKind.EOF:
            return "end of input"
        if self.kind == TokenKind.NUMBER:
            return f"number {self.text}"
        if self.kind == TokenKind.IDENTIFIER:
            return f"'{self.text}'"
        return self.kind.value

    def __str__(self) -> str:
        if self.kind in (TokenKind.NUMBER, TokenKind.IDENTIFIER):
            return f"{self.kind.name}({self.text})"
        return self.kind.name


# ============================================================================
# TOKENIZER
# ============================================================================

def is_digit(char: str) -> bool:
    return '0' <= char <= '9'


def is_whitespace(char: str) -> bool:
    return char in WHITESPACE


def is_unrecognized(char: str) -> bool:
    """Control, format, surrogate, private-use and unassigned characters"""
    return not is_whitespace(char) and unicodedata.category(char).startswith('C')


def is_identifier_char(char: str) -> bool:
    return not (is_whitespace(char) or char in PUNCTUATION or is_unrecognized(char))


class CalcTokenizer:
    """DEFCALC tokenizer; `def` comes out as an ordinary identifier"""

    def __init__(self, filename: str = "<input>", debug: bool = False):
        self.filename = filename
        self.debug = debug

    def tokenize(self, text: str) -> List[Token]:
        tokens = []
        pos = 0

        while pos < len(text):
            char = text[pos]

            if is_whitespace(char):
                pos += 1
                continue

            if is_digit(char):
                token = self._number(text, pos)
            elif char in PUNCTUATION:
                token = Token(PUNCTUATION[char], char, self._position(text, pos), char)
            elif is_identifier_char(char):
                token = self._identifier(text, pos)
            else:
                raise UnrecognizedCharacter(char, self._position(text, pos))

            tokens.append(token)
            pos += len(token.text)

        tokens.append(Token(TokenKind.EOF, None, self._position(text, len(text))))

        if self.debug:
            print(f"Tokens: {' '.join(str(t) for t in tokens)}")
        return tokens

    def _position(self, text: str, offset: int) -> SourcePosition:
        return position_at(text, offset, self.filename)

    def _number(self, text: str, start: int) -> Token:
        end = start
        while end < len(text) and is_digit(text[end]):
            end += 1
        # A fraction needs at least one digit after the dot
        if end + 1 < len(text) and text[end] == '.' and is_digit(text[end + 1]):
            end += 1
            while end < len(text) and is_digit(text[end]):
                end += 1
        lexeme = text[start:end]
        return Token(TokenKind.NUMBER, float(lexeme), self._position(text, start), lexeme)

    def _identifier(self, text: str, start: int) -> Token:
        end = start + 1
        while end < len(text) and is_identifier_char(text[end]):
            end += 1
        lexeme = text[start:end]
        return Token(TokenKind.IDENTIFIER, lexeme, self._position(text, start), lexeme)


# ============================================================================
# RECURSIVE DESCENT PARSER
# ============================================================================

class CalcParseState:
    """One pass over a token list with a single token of lookahead"""

    def __init__(self, tokens: Sequence[Token], debug: bool = False):
        if not tokens or tokens[-1].kind != TokenKind.EOF:
            raise ValueError("Token sequence must end with an EOF token")
        self.tokens = tokens
        self.pos = 0
        self.depth = 0
        self.debug = debug

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != TokenKind.EOF:
            self.pos += 1
        return token

    def at_keyword(self) -> bool:
        return self.current.kind == TokenKind.IDENTIFIER and self.current.value == KEYWORD_DEF

    def error(self, expected: str) -> Exception:
        token = self.current
        if token.kind == TokenKind.EOF:
            return UnexpectedEndOfInput(token.position, expected)
        return ExpectedToken(expected, token.describe(), token.position)

    def expect(self, kind: TokenKind) -> Token:
        if self.current.kind != kind:
            raise self.error(kind.value)
        return self.advance()

    def expect_name(self) -> Token:
        if self.current.kind != TokenKind.IDENTIFIER or self.at_keyword():
            raise self.error("identifier")
        return self.advance()

    # program -> definition* expression EndOfInput
    def program(self) -> Program:
        definitions = []
        while self.at_keyword():
            definitions.append(self.definition())

        result = self.expression()
        if self.current.kind != TokenKind.EOF:
            raise TrailingTokensAfterProgram(self.current.describe(), self.current.position)

        if self.debug:
            print(f"Parsed {len(definitions)} definitions and the final expression")
        return Program(tuple(definitions), result)

    # definition -> "def" identifier "=" expression ";"
    def definition(self) -> Definition:
        self.advance()
        name = self.expect_name()
        self.expect(TokenKind.EQUALS)
        value = self.expression()
        self.expect(TokenKind.SEMICOLON)
        if self.debug:
            print(f"Parsed definition: {name.value}")
        return Definition(name.value, value, name.position)

    # expression -> term
    def expression(self) -> Expression:
        return self.term()

    # term -> factor (("+" | "-") factor)*
    def term(self) -> Expression:
        return self._fold_left(self.factor, (TokenKind.PLUS, TokenKind.MINUS))

    # factor -> primary (("*" | "/") primary)*
    def factor(self) -> Expression:
        return self._fold_left(self.primary, (TokenKind.STAR, TokenKind.SLASH))

    def _fold_left(self, operand, kinds) -> Expression:
        expr = operand()
        while self.current.kind in kinds:
            op_token = self.advance()
            right = operand()
            expr = BinaryOp(OPERATORS[op_token.kind], expr, right, op_token.position)
        return expr

    # primary -> Number | identifier | "(" expression ")"
    def primary(self) -> Expression:
        token = self.current
        if token.kind == TokenKind.NUMBER:
            self.advance()
            return Literal(token.value, token.position)
        if token.kind == TokenKind.IDENTIFIER and not self.at_keyword():
            self.advance()
            return Reference(token.value, token.position)
        if token.kind == TokenKind.LPAREN:
            if self.depth >= MAX_NESTING_DEPTH:
                raise NestingTooDeep(MAX_NESTING_DEPTH, token.position)
            self.advance()
            self.depth += 1
            inner = self.expression()
            self.expect(TokenKind.RPAREN)
            self.depth -= 1
            return inner
        raise self.error("expression")


# ============================================================================
# REFERENCE GRAMMAR (pyparsing)
# ============================================================================

_NAME_CHARS = r"[^\s()+\-*/=;]"


def _fold_binary(tokens) -> Expression:
    """Fold a flat [operand, op, operand, ...] group to the left"""
    items = tokens[0]
    pairs = zip(items[1::2], items[2::2])
    return reduce(lambda left, pair: BinaryOp(Operator(pair[0]), left, pair[1]), pairs, items[0])


class CalcGrammar:
    """DEFCALC grammar definition using pyparsing

    Builds the same Program nodes as the recursive-descent parser. Nothing
    in the runtime path uses it: it is the independent recognizer the test
    suite checks CalcParseState against. Only ASCII whitespace is skipped
    between tokens, and it has no nesting limit of its own.
    """

    def __init__(self):
        self._setup_grammar()

    def _setup_grammar(self):
        def_kw = Regex(KEYWORD_DEF + rf"(?!{_NAME_CHARS})")
        number = Regex(r"[0-9]+(?:\.[0-9]+)?").set_parse_action(lambda t: Literal(float(t[0])))
        identifier = Regex(rf"(?!{KEYWORD_DEF}(?!{_NAME_CHARS}))[^\s0-9()+\-*/=;]{_NAME_CHARS}*")
        reference = identifier.copy().set_parse_action(lambda t: Reference(t[0]))

        expression = Forward()
        expression <<= infix_notation(number | reference, [
            (one_of("* /"), 2, OpAssoc.LEFT, _fold_binary),
            (one_of("+ -"), 2, OpAssoc.LEFT, _fold_binary),
        ])

        definition = (
            Suppress(def_kw) + identifier + Suppress("=") + expression + Suppress(";")
        ).set_parse_action(lambda t: Definition(t[0], t[1]))

        self.expression = expression
        self.definition = definition
        self.program = (ZeroOrMore(definition) + expression + StringEnd()).set_parse_action(
            lambda t: Program(tuple(t[:-1]), t[-1])
        )

    def parse_program(self, text: str) -> Program:
        """Parse a whole program; raises pyparsing's ParseException"""
        return self.program.parse_string(text, parse_all=True)[0]

    def matches(self, text: str) -> bool:
        try:
            self.parse_program(text)
        except ParseException:
            return False
        return True


# ============================================================================
# PUBLIC INTERFACE
# ============================================================================

class CalcParser:
    """Main DEFCALC parser interface"""

    def __init__(self, debug: bool = False):
        self.debug = debug

    def parse_file(self, filepath: str) -> Program:
        text = Path(filepath).read_text(encoding='utf-8')
        return self.parse_string(text, str(filepath))

    def parse_string(self, text: str, filename: str = "<input>") -> Program:
        return self.parse_tokens(self.tokenize(text, filename))

    def parse_tokens(self, tokens: Sequence[Token]) -> Program:
        return CalcParseState(tokens, self.debug).program()

    def tokenize(self, text: str, filename: str = "<input>") -> List[Token]:
        return CalcTokenizer(filename, self.debug).tokenize(text)


def create_parser(debug: bool = False) -> CalcParser:
    """Factory function for creating parser"""
    return CalcParser(debug)


def create_debug_parser() -> CalcParser:
    """Factory function for creating debug parser"""
    return CalcParser(debug=True)


def tokenize(source: str, filename: str = "<input>") -> List[Token]:
    return CalcTokenizer(filename).tokenize(source)


def parse(source: Union[str, Sequence[Token]], filename: str = "<input>") -> Program:
    """Parse source text, or a token list from tokenize(), into a Program"""
    parser = create_parser()
    if isinstance(source, str):
        return parser.parse_string(source, filename)
    return parser.parse_tokens(source)
