"""
Import specifier scanning for compiled module code

Module code is tokenized before any import is recognized, so text inside
string literals, template literals, regular expressions and comments never
counts as an import. Compiled components embed their markup in string
literals, which makes this distinction matter for ordinary page text.
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional

# Token kinds
TK_NAME = "NAME"
TK_STRING = "STRING"
TK_TEMPLATE = "TEMPLATE"
TK_REGEX = "REGEX"
TK_PUNCT = "PUNCT"

# Names after which a `/` starts a regular expression rather than a division
REGEX_PRECEDING_KEYWORDS = {
    "return", "typeof", "instanceof", "in", "of", "new", "delete", "void",
    "throw", "case", "do", "else", "yield", "await",
}

# Punctuation after which a `/` is a division
DIVISION_PRECEDING_PUNCT = {")", "]"}

# Tokens that may sit between `import` and `from` in a static import clause
IMPORT_CLAUSE_PUNCT = {"{", "}", ",", "*"}


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    offset: int


class ScanError(ValueError):
    """Raised when module code ends inside a literal or comment"""


def _is_name_char(ch: str) -> bool:
    return ch.isalnum() or ch in "_$" or ord(ch) > 127


class ModuleLexer:
    """
    Minimal ECMAScript tokenizer

    Produces names, string literals and punctuation with literal contents
    resolved. Template literal text is skipped while `${...}` expressions
    inside it are tokenized as ordinary code.
    """

    def __init__(self, code: str):
        self.code = code
        self.pos = 0
        # One entry per open `{`; True when the brace opened a template substitution
        self.braces: List[bool] = []
        self.last: Optional[Token] = None

    def tokens(self) -> Iterator[Token]:
        code = self.code
        if code.startswith("#!"):
            self.pos = self._line_end(0)

        while True:
            self._skip_trivia()
            if self.pos >= len(code):
                return
            token = self._next_token()
            if token is not None:
                self.last = token
                yield token

    def _next_token(self) -> Optional[Token]:
        code = self.code
        start = self.pos
        ch = code[start]

        if ch in "'\"":
            return Token(TK_STRING, self._read_string(ch), start)

        if ch == "`":
            self.pos += 1
            return self._read_template(start)

        if ch == "}" and self.braces and self.braces.pop():
            self.pos += 1
            return self._read_template(start)

        if ch == "/" and self._regex_allowed() and self._read_regex():
            return Token(TK_REGEX, code[start:self.pos], start)

        if _is_name_char(ch):
            end = start
            while end < len(code) and _is_name_char(code[end]):
                end += 1
            self.pos = end
            return Token(TK_NAME, code[start:end], start)

        if ch == "{":
            self.braces.append(False)
        self.pos += 1
        return Token(TK_PUNCT, ch, start)

    def _skip_trivia(self):
        code = self.code
        while self.pos < len(code):
            ch = code[self.pos]
            if ch.isspace():
                self.pos += 1
            elif code.startswith("//", self.pos):
                self.pos = self._line_end(self.pos)
            elif code.startswith("/*", self.pos):
                end = code.find("*/", self.pos + 2)
                if end < 0:
                    raise ScanError(f"Unterminated comment at offset {self.pos}")
                self.pos = end + 2
            else:
                return

    def _line_end(self, pos: int) -> int:
        end = self.code.find("\n", pos)
        return len(self.code) if end < 0 else end

    def _read_string(self, quote: str) -> str:
        code = self.code
        start = self.pos
        i = start + 1
        chars = []
        while i < len(code):
            ch = code[i]
            if ch == "\\":
                if i + 1 < len(code) and code[i + 1] != "\n":
                    chars.append(code[i + 1])
                i += 2
                continue
            if ch == quote:
                self.pos = i + 1
                return "".join(chars)
            if ch == "\n":
                break
            chars.append(ch)
            i += 1
        raise ScanError(f"Unterminated string literal at offset {start}")

    def _read_template(self, start: int) -> Token:
        """Skip template text up to the closing backtick or the next `${`"""
        code = self.code
        i = self.pos
        while i < len(code):
            ch = code[i]
            if ch == "\\":
                i += 2
                continue
            if ch == "`":
                self.pos = i + 1
                return Token(TK_TEMPLATE, code[start:self.pos], start)
            if code.startswith("${", i):
                self.braces.append(True)
                self.pos = i + 2
                return Token(TK_TEMPLATE, code[start:self.pos], start)
            i += 1
        raise ScanError(f"Unterminated template literal at offset {start}")

    def _regex_allowed(self) -> bool:
        last = self.last
        if last is None:
            return True
        if last.kind == TK_NAME:
            return last.value in REGEX_PRECEDING_KEYWORDS
        if last.kind == TK_PUNCT:
            return last.value not in DIVISION_PRECEDING_PUNCT
        # A template chunk ending in `${` opens an expression
        return last.kind == TK_TEMPLATE and last.value.endswith("${")

    def _read_regex(self) -> bool:
        """Consume a regular expression literal; a `/` with no closing slash on its line is a division"""
        code = self.code
        start = self.pos
        i = start + 1
        in_class = False
        while i < len(code):
            ch = code[i]
            if ch == "\\":
                i += 2
                continue
            if ch == "\n":
                break
            if in_class:
                in_class = ch != "]"
            elif ch == "[":
                in_class = True
            elif ch == "/":
                i += 1
                while i < len(code) and _is_name_char(code[i]):
                    i += 1
                self.pos = i
                return True
            i += 1
        return False


def _is_member_access(tokens: List[Token], index: int) -> bool:
    return index > 0 and tokens[index - 1].kind == TK_PUNCT and tokens[index - 1].value == "."


def _clause_source(tokens: List[Token], index: int) -> Optional[str]:
    """Specifier of `... from "m"` following an import or export keyword at index"""
    closed = False
    i = index + 1
    while i < len(tokens):
        token = tokens[i]
        if token.kind == TK_NAME:
            if token.value == "from" and i + 1 < len(tokens) and tokens[i + 1].kind == TK_STRING:
                return tokens[i + 1].value
            if closed or token.value in ("import", "export"):
                return None
        elif token.kind == TK_PUNCT and token.value in IMPORT_CLAUSE_PUNCT:
            if closed and token.value != ",":
                return None
            closed = token.value == "}"
        else:
            return None
        i += 1
    return None


def scan_imports(code: str) -> List[str]:
    """
    Find the module specifiers a piece of module code depends on

    Args:
        code: ES module source

    Returns:
        Specifiers in order of first appearance, without duplicates

    Raises:
        ScanError: If the code ends inside a literal or comment
    """
    tokens = list(ModuleLexer(code).tokens())
    found = []

    for i, token in enumerate(tokens):
        if token.kind != TK_NAME or token.value not in ("import", "export"):
            continue
        if _is_member_access(tokens, i) or i + 1 >= len(tokens):
            continue
        following = tokens[i + 1]

        if token.value == "import":
            if following.kind == TK_STRING:
                found.append(following.value)
            elif following.kind == TK_PUNCT and following.value == "(":
                # import("m") with a literal specifier
                if (i + 3 < len(tokens) and tokens[i + 2].kind == TK_STRING
                        and tokens[i + 3].kind == TK_PUNCT and tokens[i + 3].value in "),"):
                    found.append(tokens[i + 2].value)
            elif following.kind == TK_NAME or (following.kind == TK_PUNCT and following.value in "{*"):
                source = _clause_source(tokens, i)
                if source is not None:
                    found.append(source)
        elif following.kind == TK_PUNCT and following.value in "{*":
            source = _clause_source(tokens, i)
            if source is not None:
                found.append(source)

    seen = set()
    ordered = []
    for specifier in found:
        if specifier not in seen:
            seen.add(specifier)
            ordered.append(specifier)
    return ordered
