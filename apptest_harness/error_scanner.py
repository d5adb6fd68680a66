"""Detection of known error signatures in application output."""

import logging
import re
from collections.abc import Sequence
from pathlib import Path

logger = logging.getLogger(__name__)

REGEX_PREFIX = "@"
COMMENT_PREFIX = "#"


class ErrorPatternScanner:
    """Matches lines against the patterns of an error patterns file.

    One pattern per line. Blank lines and lines starting with ``#`` are
    ignored, lines starting with ``@`` are regular expressions and every other
    line is matched as a literal substring.
    """

    def __init__(self, patterns_file: Path) -> None:
        if not patterns_file.exists():
            raise FileNotFoundError(f"Cannot find error patterns file {patterns_file}")

        self.literals, self.regexes = parse_patterns(
            patterns_file.read_text(encoding="utf-8").splitlines()
        )
        logger.debug(
            "Loaded %d literal and %d regex error patterns from %s",
            len(self.literals),
            len(self.regexes),
            patterns_file,
        )

    def is_error(self, line: str) -> bool:
        """Check whether the line matches any known error pattern."""
        if any(literal in line for literal in self.literals):
            return True
        return any(regex.search(line) for regex in self.regexes)


def parse_patterns(
    lines: Sequence[str],
) -> tuple[Sequence[str], Sequence[re.Pattern[str]]]:
    """Split pattern file lines into literal and regex patterns."""
    literals: list[str] = []
    regexes: list[re.Pattern[str]] = []

    for raw in lines:
        pattern = raw.strip()
        if not pattern or pattern.startswith(COMMENT_PREFIX):
            continue
        if pattern.startswith(REGEX_PREFIX):
            regexes.append(re.compile(pattern[len(REGEX_PREFIX) :]))
        else:
            literals.append(pattern)

    return literals, regexes
