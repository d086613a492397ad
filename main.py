"""
DEFCALC - Main Entry Point
Command line runner and interactive mode for the definition calculator
"""

import sys
import argparse
import math
from pathlib import Path
from typing import List, Optional
import os

# Readline support for history and auto-completion
try:
  import readline
  READLINE_AVAILABLE = True
except ImportError:
  READLINE_AVAILABLE = False

from error_handling import RunError, format_error
from parsing import create_parser, create_debug_parser
from syntax import pretty_print_ast, to_source
from interpreter import create_interpreter, create_debug_interpreter


VERSION = "0.1.0"
EXIT_COMMANDS = ("quit", "exit")


def create_arg_parser() -> argparse.ArgumentParser:
  """Create command line argument parser"""
  parser = argparse.ArgumentParser(
      prog='defcalc',
      description='DEFCALC - arithmetic with sequential named definitions',
      formatter_class=argparse.RawDescriptionHelpFormatter,
      epilog="""
Examples:
  %(prog)s script.calc                   # Run a program file
  %(prog)s -e "def a = 5; a * 2"         # Run a program given inline
  echo "1 + 2 * 3" | %(prog)s -          # Run a program from stdin
  %(prog)s --tokens script.calc          # Show the token stream
  %(prog)s --parse script.calc           # Show the AST
  %(prog)s -i                            # Interactive mode
        """
  )

  parser.add_argument(
      'script',
      nargs='?',
      help="Program file to run ('-' reads stdin)"
  )

  parser.add_argument(
      '-e', '--eval',
      metavar='SOURCE',
      help='Run the given program text'
  )

  parser.add_argument(
      '-i', '--interactive',
      action='store_true',
      help='Start interactive mode'
  )

  parser.add_argument(
      '--tokens',
      action='store_true',
      help='Tokenize only and show the tokens'
  )

  parser.add_argument(
      '--parse',
      action='store_true',
      help='Parse only and show the AST'
  )

  parser.add_argument(
      '--debug',
      action='store_true',
      help='Trace every stage'
  )

  parser.add_argument(
      '--version',
      action='version',
      version=f'DEFCALC v{VERSION}'
  )

  return parser


def format_value(value: float) -> str:
  """Integral results print without a fractional part"""
  if math.isfinite(value) and value == int(value):
    return str(int(value))
  return repr(value)


def read_source(script_path: str) -> str:
  if script_path == '-':
    return sys.stdin.read()
  return Path(script_path).read_text(encoding='utf-8')


def show_tokens(source: str, filename: str, debug: bool = False) -> None:
  parser = create_debug_parser() if debug else create_parser()
  for token in parser.tokenize(source, filename):
    print(f"{token.position.line}:{token.position.column}\t{token}")


def show_ast(source: str, filename: str, debug: bool = False) -> None:
  parser = create_debug_parser() if debug else create_parser()
  program = parser.parse_string(source, filename)
  print(pretty_print_ast(program))
  print()
  print(f"Canonical form: {to_source(program)}")


def run_source(source: str, filename: str, debug: bool = False) -> None:
  interpreter = create_debug_interpreter() if debug else create_interpreter()
  print(format_value(interpreter.run(source, filename)))


def process_source(source: str, filename: str, args: argparse.Namespace) -> int:
  """Run one program per the command line flags; returns the exit status"""
  try:
    if args.tokens:
      show_tokens(source, filename, args.debug)
    elif args.parse:
      show_ast(source, filename, args.debug)
    else:
      run_source(source, filename, args.debug)
  except RunError as e:
    print(format_error(e, source))
    return 1
  return 0


def setup_readline():
  """Setup readline with history and auto-completion"""
  if not READLINE_AVAILABLE:
    return

  history_file = os.path.expanduser("~/.defcalc_history")
  try:
    readline.read_history_file(history_file)
  except OSError:
    pass  # First time, no history yet

  readline.set_history_length(1000)

  completions = ["def", ":tokens", ":parse", ":help", "quit"]

  def completer(text, state):
    options = [cmd for cmd in completions if cmd.startswith(text)]
    if state < len(options):
      return options[state]
    return None

  readline.set_completer(completer)
  readline.parse_and_bind("tab: complete")

  import atexit
  atexit.register(readline.write_history_file, history_file)


def show_repl_help() -> None:
  print("REPL Commands:")
  print("  :tokens <src>     - Show the token stream")
  print("  :parse <src>      - Show the AST")
  print("  :help             - Show this help")
  print("  quit              - Exit REPL")
  print()
  print("Every line is a complete program:")
  print("  1 + 2 * 3                       => 7")
  print("  def a = 5; def b = a * 2; a + b => 15")


def evaluate_line(line: str, debug: bool = False) -> None:
  """Handle one REPL line; errors are printed, never raised"""
  code = line.strip()
  if code == ":help":
    show_repl_help()
    return

  source = line
  try:
    if code.startswith(":tokens"):
      source = code[len(":tokens"):]
      show_tokens(source, "<repl>", debug)
    elif code.startswith(":parse"):
      source = code[len(":parse"):]
      show_ast(source, "<repl>", debug)
    else:
      run_source(source, "<repl>", debug)
  except RunError as e:
    print(format_error(e, source))


def run_interactive_mode(debug: bool = False) -> None:
  """Run DEFCALC in interactive mode"""
  print(f"DEFCALC v{VERSION} - Interactive Mode")
  print("Type 'quit' to exit, ':help' for commands")
  if debug:
    print("Debug mode enabled")
  print()

  setup_readline()

  while True:
    try:
      line = input("> ")
    except (KeyboardInterrupt, EOFError):
      print("\nGoodbye!")
      break

    if line.strip() in EXIT_COMMANDS:
      break
    if not line.strip():
      continue
    evaluate_line(line, debug)


def show_language_info() -> None:
  """Show DEFCALC language information"""
  print("DEFCALC")
  print("=" * 50)
  print("Numbers, + - * / with the usual precedence, parentheses,")
  print("and definitions that later expressions can use:")
  print()
  print("  def rate = 3; def hours = 40; rate * hours")
  print()


def main(argv: Optional[List[str]] = None) -> None:
  """Main entry point for DEFCALC"""
  arg_parser = create_arg_parser()
  argv = sys.argv[1:] if argv is None else argv
  args = arg_parser.parse_args(argv)

  if not argv:
    show_language_info()
    run_interactive_mode(debug=False)
    return

  if args.eval is not None:
    sys.exit(process_source(args.eval, "<eval>", args))

  if args.script:
    try:
      source = read_source(args.script)
    except FileNotFoundError:
      print(f"Error: Script file '{args.script}' not found")
      sys.exit(1)
    except UnicodeDecodeError as e:
      print(f"Error: Cannot decode file '{args.script}': {e}")
      print(f"  Hint: Make sure the file is a text file with UTF-8 encoding")
      sys.exit(1)
    filename = "<stdin>" if args.script == '-' else args.script
    sys.exit(process_source(source, filename, args))

  if args.interactive:
    run_interactive_mode(debug=args.debug)
  else:
    arg_parser.print_help()
    print()
    show_language_info()


if __name__ == "__main__":
  main()
