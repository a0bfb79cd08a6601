"""
Reproducible-example (reprex) mode helpers.

In reprex mode every line of output is written as a comment, so a session
transcript can be pasted back into the console as-is. Pasted output lines
are recognised by their comment prefix and dropped before evaluation.
"""

DEFAULT_COMMENT = "#> "


def strip_output_lines(source: str, comment: str = DEFAULT_COMMENT) -> str:
    """Remove previously captured output lines from pasted input."""
    marker = comment.rstrip() or DEFAULT_COMMENT.rstrip()
    kept = [line for line in source.splitlines() if not line.lstrip().startswith(marker)]
    return "\n".join(kept)


class LinePrefixer:
    """
    Prefix each output line with the reprex comment.

    Output arrives in arbitrary chunks, so the prefixer remembers whether the
    next character starts a new line.

    Example:
        p = LinePrefixer("#> ")
        p.feed("1\\n2")   -> "#> 1\\n#> 2"
        p.feed("3\\n")    -> "3\\n"
    """

    def __init__(self, comment: str = DEFAULT_COMMENT):
        self.comment = comment
        self._at_line_start = True

    def feed(self, text: str) -> str:
        out = []
        for piece in text.splitlines(keepends=True):
            if self._at_line_start:
                out.append(self.comment)
            out.append(piece)
            self._at_line_start = piece.endswith(("\n", "\r"))
        return "".join(out)
