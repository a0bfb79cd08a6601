"""
Syntax highlighting for the repline prompt.

Both modes share one colour theme:

  Meta-commands (:reprex, :shell)   magenta bold
  Keywords                          pink
  Strings ("...", '...')            green
  Variables ($VAR, ${VAR})          yellow
  Pipes & operators (|, &&)         cyan
  Numbers                           purple
  Comments (#...)                   dark grey / italic

Uses Pygments for lexing and prompt_toolkit for rendering.
"""

from pygments.lexer import RegexLexer, inherit
from pygments.lexers.python import PythonLexer
from pygments.style import Style as PygmentsStyle
from pygments.token import (
    Token,
    Comment,
    Keyword,
    String,
    Name,
    Number,
    Operator,
    Punctuation,
)

# A meta-command is a colon and a word at the very start of the input
META_COMMAND_RULE = (r"\A\s*:[A-Za-z][\w-]*", Keyword.Pseudo)


# ---------------------------------------------------------------------------
# Lexers
# ---------------------------------------------------------------------------

class PythonInputLexer(PythonLexer):
    """Python lexer that also recognises a leading meta-command."""

    name = "PythonInput"
    aliases = ["pythoninput"]

    tokens = {
        "root": [
            META_COMMAND_RULE,
            inherit,
        ],
    }


class ShellLexer(RegexLexer):
    """
    Lightweight lexer for interactive shell command highlighting.

    Designed for the single-line commands users type at a prompt, not for
    full shell scripts.  Recognises flags, strings, variables, operators,
    and numbers while leaving everything else as plain text.
    """

    name = "ShellInput"
    aliases = ["shellinput"]

    tokens = {
        "root": [
            META_COMMAND_RULE,

            # ── comments ──
            (r"#.*$", Comment.Single),

            # ── strings ──
            (r'"(?:\\.|[^"\\])*"', String.Double),
            (r"'[^']*'", String.Single),
            (r"`[^`]*`", String.Backtick),

            # ── shell variables ──
            (r"\$\{[^}]+\}", Name.Variable),
            (r"\$[A-Za-z_]\w*", Name.Variable),

            # ── flags ──
            (r"--[A-Za-z0-9][\w-]*", Name.Tag),
            (r"(?<=\s)-[A-Za-z0-9]+", Name.Tag),
            (r"^-[A-Za-z0-9]+", Name.Tag),

            # ── operators & redirects ──
            (r"\|{1,2}", Operator),
            (r"&&", Operator),
            (r"[12]?>{1,2}", Operator),
            (r"<", Operator),
            (r";", Punctuation),

            # ── numbers ──
            (r"\b\d+\b", Number.Integer),

            # ── catch-all ──
            (r"\S+", Token.Text),
            (r"\s+", Token.Text),
        ],
    }


# ---------------------------------------------------------------------------
# Colour palette (Monokai-inspired, great on dark backgrounds)
# ---------------------------------------------------------------------------

class ReplineStyle(PygmentsStyle):
    """Pygments colour theme shared by both modes."""

    default_style = ""
    styles = {
        Token.Text:        "",
        Keyword.Pseudo:    "#d75fd7 bold",      # magenta, meta-commands
        Keyword:           "#f92672",           # pink
        Name.Builtin:      "#66d9ef",
        Name.Function:     "#a6e22e",
        Name.Class:        "#a6e22e",
        Comment:           "#6a6a6a italic",
        String:            "#a6e22e",
        Name.Variable:     "#e6db74",
        Name.Tag:          "#888888",           # grey, flags
        Operator:          "#66d9ef",
        Punctuation:       "#66d9ef",
        Number:            "#ae81ff",
    }


# ---------------------------------------------------------------------------
# Prompt segment styles
# ---------------------------------------------------------------------------

PROMPT_STYLE = {
    "prompt":        "#00d7d7 bold",    # cyan bold, normal prompt
    "prompt-error":  "#f92672 bold",    # pink bold, last command failed
    "continuation":  "#6a6a6a",         # dim grey, "... "
}
