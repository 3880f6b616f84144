"""
simple assignment interpreter
- integer assignments only
- evaluation happens while parsing, no AST
- variables are reported in first-assignment order

grammar:
program               : assignment*
assignment            : IDENTIFIER ASSIGN expr SEMI
expr                  : term ((PLUS | MINUS) term)*
term                  : factor (MUL factor)*
factor                : (PLUS | MINUS)* primary
primary               : LPAREN expr RPAREN
                      | INTEGER_LITERAL
                      | IDENTIFIER
"""

from collections import OrderedDict, deque, namedtuple
from enum import Enum
import argparse
import re
import sys

from pyecharts import options as opts
from pyecharts.charts import Tree

INT_BITS = 32
LOCAL_ECHARTS = True
_SHOULD_LOG_TOKENS = False
_SHOULD_LOG_MEMORY = False


def wrap(value):
    """two's complement wraparound at INT_BITS
    """
    value &= (1 << INT_BITS) - 1
    if value >= 1 << (INT_BITS - 1):
        value -= 1 << INT_BITS
    return value


###############################################################################
#                                                                             #
#   ERROR MESSAGE                                                             #
#                                                                             #
###############################################################################

Position = namedtuple('Position', ['line', 'col'])


class ErrorInfo:
    # lexer error

    @staticmethod
    def unrecognized_char(item):
        return f'unrecognized char `{item}`'

    @staticmethod
    def malformed_numeral(item):
        return f'malformed numeral `{item}`, leading zero is not allowed'

    # parser error

    @staticmethod
    def unexpected_token(item, want):
        if item is None:
            item = 'EOF'
        return f'token `{item}` is not expected, want `{want}`'

    @staticmethod
    def nesting_too_deep():
        return 'expression nesting is too deep'

    # evaluation error

    @staticmethod
    def id_not_defined(item):
        return f'identifier `{item}` not defined'


class Error(Exception):
    def __init__(self, position, message):
        super().__init__(message)
        self.position = position
        self.message = message

    def __str__(self):
        return f'{self.__class__.__name__}: <{self.position.line}:{self.position.col}>: {self.message}'

    __repr__ = __str__


class LexerError(Error):
    pass


class ParserError(Error):
    pass


class UndefinedVariableError(Error):
    pass


###############################################################################
#                                                                             #
#  CHARACTER SOURCE                                                           #
#                                                                             #
###############################################################################

class CharSource:
    """one-character lookahead over a source of lines

    A whole line (plus '\\n') is pulled into the buffer only when the buffer
    is empty. End of input is `None`.
    """

    def __init__(self, lines):
        if isinstance(lines, str):
            lines = lines.splitlines()
        self.lines = iter(lines)
        self.buffer = deque()
        # for error information
        self.line = 0
        self.width = 0

    def fill(self):
        while not self.buffer:
            line = next(self.lines, None)
            if line is None:
                return False
            if line.endswith('\n'):
                line = line[:-1]
            if line.endswith('\r'):
                line = line[:-1]
            self.buffer.extend(line)
            self.buffer.append('\n')
            self.line += 1
            self.width = len(line) + 1
        return True

    def peek(self):
        """lookup next char, but not consume it
        """
        if not self.fill():
            return None
        return self.buffer[0]

    def advance(self):
        """consume and return next char
        """
        if not self.fill():
            return None
        return self.buffer.popleft()

    def position(self):
        self.fill()
        return Position(self.line, self.width - len(self.buffer) + 1)


###############################################################################
#                                                                             #
#  LEXER                                                                      #
#                                                                             #
###############################################################################

# Token types
class TokenType(Enum):
    INTEGER_LITERAL = 'INTEGER_LITERAL'
    IDENTIFIER      = 'IDENTIFIER'
    OPERATOR        = 'OPERATOR'
    PUNCTUATION     = 'PUNCTUATION'


OPERATORS    = '+-*='
PUNCTUATIONS = ';()'
DIGITS       = '0123456789'


class Token(namedtuple('Token', ['type', 'value'])):
    """Token

    type: TokenType
    value: int for INTEGER_LITERAL, str for the others
    """
    __slots__ = ()

    def __str__(self):
        return f'Token({self.type.name}, {repr(self.value)})'

    __repr__ = __str__


def _is_digit(ch):
    return ch is not None and ch in DIGITS


def _is_id_char(ch):
    return ch is not None and (ch.isalpha() or ch.isdecimal() or ch == '_')


class Lexer:
    def __init__(self, source: CharSource):
        self.source = source
        self.symbols = {}   # interned identifiers
        self.token_position = None

    def error(self, message):
        raise LexerError(self.source.position(), message)

    def log(self, msg):
        if _SHOULD_LOG_TOKENS:
            print(msg)

    def skip_whitespace(self):
        while self.source.peek() is not None and self.source.peek().isspace():
            self.source.advance()

    def number(self):
        """parse an integer literal from the input
        """
        if self.source.peek() == '0':
            self.source.advance()
            if _is_digit(self.source.peek()):
                self.error(ErrorInfo.malformed_numeral('0' + self.source.peek()))
            return Token(TokenType.INTEGER_LITERAL, 0)

        value = 0
        while _is_digit(self.source.peek()):
            value = wrap(value * 10 + int(self.source.advance()))
        return Token(TokenType.INTEGER_LITERAL, value)

    def _id(self):
        """parse an identifier, same name gives the same token
        """
        result = ''
        while _is_id_char(self.source.peek()):
            result += self.source.advance()

        token = self.symbols.get(result)
        if token is None:
            token = self.symbols[result] = Token(TokenType.IDENTIFIER, result)
        return token

    def scan(self):
        self.skip_whitespace()
        self.token_position = self.source.position()
        ch = self.source.peek()

        if ch is None:
            return None

        if ch in OPERATORS:
            self.source.advance()
            return Token(TokenType.OPERATOR, ch)

        if ch in PUNCTUATIONS:
            self.source.advance()
            return Token(TokenType.PUNCTUATION, ch)

        if _is_digit(ch):
            return self.number()

        if ch.isalpha() or ch == '_':
            return self._id()

        self.error(ErrorInfo.unrecognized_char(ch))

    def get_next_token(self):
        """lexical analyzer, one token one time

        return None at end of input.
        """
        token = self.scan()
        if token is not None:
            self.log(f'token: {token} at {self.token_position.line}:{self.token_position.col}')
        return token

    def tokens(self):
        while True:
            token = self.get_next_token()
            if token is None:
                return
            yield token


###############################################################################
#                                                                             #
#  MEMORY                                                                     #
#                                                                             #
###############################################################################

class Memory:
    """variable store, keeps the order of first assignment
    """

    def __init__(self):
        self._members = OrderedDict()

    def __contains__(self, name):
        return name in self._members

    def __len__(self):
        return len(self._members)

    def log(self, msg):
        if _SHOULD_LOG_MEMORY:
            print(msg)

    def assign(self, name, value):
        self.log(f'assign: {name} = {value}')
        self._members[name] = value

    def lookup(self, name):
        return self._members[name]

    def report(self):
        return list(self._members.items())

    def __str__(self) -> str:
        return '\n'.join(f'{name} = {value}' for name, value in self._members.items())

    __repr__ = __str__


###############################################################################
#                                                                             #
#  TRACE                                                                      #
#                                                                             #
###############################################################################

class Trace:
    """records every grammar reduction with its value, as tree chart data
    """

    def __init__(self, enabled=True):
        self.enabled = enabled
        self.root = None
        self._stack = []

    def enter(self, label):
        if not self.enabled:
            return
        node = {'name': label, 'children': []}
        if self._stack:
            self._stack[-1]['children'].append(node)
        else:
            self.root = node
        self._stack.append(node)

    def leave(self, value=None):
        if not self.enabled:
            return
        node = self._stack.pop()
        if value is not None:
            node['name'] = f'{node["name"]}: {value}'
        if not node['children']:
            del node['children']

    def leaf(self, label):
        if self.enabled:
            self._stack[-1]['children'].append({'name': label})


###############################################################################
#                                                                             #
#  PARSER & EVALUATOR                                                         #
#                                                                             #
###############################################################################

class Parser:
    def __init__(self, lexer: Lexer, trace: Trace = None):
        self.lexer = lexer
        self.memory = Memory()
        self.trace = trace if trace is not None else Trace(enabled=False)
        self.look = None
        self.look_position = None
        self.move()

    def move(self):
        self.look = self.lexer.get_next_token()
        self.look_position = self.lexer.token_position

    def error(self, message):
        raise ParserError(self.look_position, message)

    def check(self, token_type, value=None):
        if self.look is None or self.look.type != token_type:
            return False
        return value is None or self.look.value == value

    def eat(self, token_type, value=None):
        """verify the lookahead and move on
        """
        if self.check(token_type, value):
            self.move()
        else:
            self.error(ErrorInfo.unexpected_token(self.look, value or token_type.value))

    def program(self):
        """parse program, return the variables as (name, value) list

        program : assignment*
        """
        self.trace.enter('program')
        while self.look is not None:
            self.assignment()
        self.trace.leave()
        return self.memory.report()

    def assignment(self):
        """parse assignment

        assignment : IDENTIFIER ASSIGN expr SEMI
        """
        token = self.look
        self.eat(TokenType.IDENTIFIER)
        self.trace.enter(token.value)
        self.eat(TokenType.OPERATOR, '=')
        value = self.expr()
        self.eat(TokenType.PUNCTUATION, ';')
        self.memory.assign(token.value, value)
        self.trace.leave(value)

    def expr(self):
        """parse expr

        expr : term ((PLUS | MINUS) term)*
        """
        self.trace.enter('expr')
        result = self.term()

        while self.check(TokenType.OPERATOR, '+') or self.check(TokenType.OPERATOR, '-'):
            op = self.look.value
            self.move()
            self.trace.leaf(op)
            if op == '+':
                result = wrap(result + self.term())
            else:
                result = wrap(result - self.term())

        self.trace.leave(result)
        return result

    def term(self):
        """parse term

        term : factor (MUL factor)*
        """
        self.trace.enter('term')
        result = self.factor()

        while self.check(TokenType.OPERATOR, '*'):
            self.move()
            self.trace.leaf('*')
            result = wrap(result * self.factor())

        self.trace.leave(result)
        return result

    def factor(self):
        """parse factor

        factor : (PLUS | MINUS)* primary
        primary : LPAREN expr RPAREN
                | INTEGER_LITERAL
                | IDENTIFIER
        """
        self.trace.enter('factor')
        sign = 1
        while self.check(TokenType.OPERATOR, '+') or self.check(TokenType.OPERATOR, '-'):
            if self.look.value == '-':
                sign = -sign
            self.move()

        token = self.look
        if self.check(TokenType.PUNCTUATION, '('):
            self.move()
            value = self.expr()
            self.eat(TokenType.PUNCTUATION, ')')
        elif self.check(TokenType.INTEGER_LITERAL):
            value = token.value
            self.move()
            self.trace.leaf(str(value))
        elif self.check(TokenType.IDENTIFIER):
            if token.value not in self.memory:
                raise UndefinedVariableError(self.look_position, ErrorInfo.id_not_defined(token.value))
            value = self.memory.lookup(token.value)
            self.move()
            self.trace.leaf(token.value)
        else:
            self.error(ErrorInfo.unexpected_token(token, 'primary'))

        result = wrap(sign * value)
        self.trace.leave(result)
        return result


###############################################################################
#                                                                             #
#  DISPLAYER                                                                  #
#                                                                             #
###############################################################################

class Displayer:
    def __init__(self, data) -> None:
        self.data = data

    def display(self, path='Tree.html'):
        (
            Tree(init_opts=opts.InitOpts(page_title='Tree'))
            .add(
                series_name='',         # name
                data=[self.data],       # data
                initial_tree_depth=-1,  # all expand
                orient='TB',            # top-to-bottom
                label_opts=opts.LabelOpts(
                    position='top',
                    vertical_align='middle',
                ),
            )
            .set_global_opts(title_opts=opts.TitleOpts(title='Tree'))
            .render(path)
        )

        # modify js reference to local
        if LOCAL_ECHARTS:
            with open(path, 'r', encoding='utf-8') as fin:
                content = fin.read()
            content = re.sub(r'src="[^"]*echarts\.min\.js"', 'src="echarts.min.js"', content)
            with open(path, 'w', encoding='utf-8') as fout:
                fout.write(content)
        return path


###############################################################################
#                                                                             #
#   MAIN                                                                      #
#                                                                             #
###############################################################################

def interpret(source, trace=None):
    """run one program block

    source is a str or an iterable of lines. Return [(name, value), ...].
    """
    lexer = Lexer(CharSource(source))
    parser = Parser(lexer, trace)
    try:
        return parser.program()
    except RecursionError:
        raise ParserError(parser.look_position, ErrorInfo.nesting_too_deep()) from None


def format_report(report):
    return [f'{name} = {value}' for name, value in report]


def run_block(lines, out=None, verbose_errors=False, display=False):
    """run one block and print the result, or `error`
    """
    out = out or sys.stdout
    trace = Trace(enabled=display)
    try:
        report = interpret(lines, trace)
    except Error as e:
        print(str(e) if verbose_errors else 'error', file=out)
        return False

    for line in format_report(report):
        print(line, file=out)

    if display:
        Displayer(trace.root).display()
        print('open "Tree.html"', file=out)
    return True


def repl(stdin=None, stdout=None, verbose_errors=False, display=False):
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    print('Please enter program', file=stdout)
    print('After entering program, press Enter on empty line to run it.', file=stdout)
    while True:
        block = []
        eof = False
        while True:
            line = stdin.readline()
            if line == '':
                eof = True
                break
            line = line.rstrip('\r\n')
            if line == '':
                break
            block.append(line)

        if eof and not block:
            return

        run_block(block, stdout, verbose_errors, display)

        if eof:
            return

        print("Type 'no' to exit, anything else to continue:", file=stdout)
        answer = stdin.readline()
        if answer == '' or answer.strip().lower() == 'no':
            print('Process end', file=stdout)
            return


def sai_main(argv=None):
    global _SHOULD_LOG_TOKENS
    global _SHOULD_LOG_MEMORY

    parser = argparse.ArgumentParser(description='SAI - Simple Assignment Interpreter')
    parser.add_argument('inputfile', nargs='?', help='program source file, start interactive mode if omitted')
    parser.add_argument('--tokens', action='store_true', help='Print every scanned token')
    parser.add_argument('--memory', action='store_true', help='Print every assignment')
    parser.add_argument('--display', action='store_true', help='Render the evaluation tree to Tree.html')
    parser.add_argument('--verbose-errors', action='store_true', help='Print the error message instead of `error`')
    args = parser.parse_args(argv)

    _SHOULD_LOG_TOKENS = args.tokens
    _SHOULD_LOG_MEMORY = args.memory

    if args.inputfile is None:
        repl(verbose_errors=args.verbose_errors, display=args.display)
        return 0

    with open(args.inputfile, 'r', encoding='utf-8') as fin:
        ok = run_block(fin, verbose_errors=args.verbose_errors, display=args.display)
    return 0 if ok else 1


if __name__ == '__main__':
    sys.exit(sai_main())
