"""Plain-text normalization applied to a complete model answer.

The model is asked for prose without markdown, but streamed tokens still
arrive glued together ("SalutLume"), with missing spaces after punctuation
and with stray emphasis or list markup. The rules below repair that. They
look across token boundaries, which is why they only ever run on the fully
accumulated text and never on individual deltas.

Rules run in a fixed order and the whole pass is repeated until the text is
stable, so ``normalize_text(normalize_text(x)) == normalize_text(x)``.
"""
import re
from typing import Callable, List, Tuple, Union

# ASCII plus Latin-1 and Romanian diacritics (comma and cedilla forms)
LOWER = "a-zß-öø-ÿășşțţ"
UPPER = "A-ZÀ-ÖØ-ÞĂȘŞȚŢ"
LETTER = LOWER + UPPER

Replacement = Union[str, Callable[[re.Match], str]]

RULES: List[Tuple[str, re.Pattern, Replacement]] = [
    # a. glued words
    ("split_camel", re.compile(rf"([{LOWER}])([{UPPER}])"), r"\1 \2"),
    # b. punctuation spacing
    ("space_after_period", re.compile(rf"\.([{UPPER}])"), r". \1"),
    ("space_after_punct", re.compile(rf"([,:;)])([{LETTER}])"), r"\1 \2"),
    ("space_before_paren", re.compile(rf"([{LETTER}])\("), r"\1 ("),
    # c. inline markup
    ("bold", re.compile(r"\*\*([^*\s](?:[^*\n]*[^*\s])?)\*\*"), r"\1"),
    ("italic", re.compile(r"\*([^*\s](?:[^*\n]*[^*\s])?)\*"), r"\1"),
    ("strike", re.compile(r"~~([^~\n]+)~~"), r"\1"),
    ("code", re.compile(r"`([^`\n]+)`"), r"\1"),
    # d. headings
    ("heading", re.compile(r"^(?:#{1,6}[ \t]+)+", re.MULTILINE), ""),
    # e. list markers
    ("star_bullet", re.compile(r"^\*[ \t]+", re.MULTILINE), "- "),
    ("numbered_bullet", re.compile(r"^\d+\.[ \t]+", re.MULTILINE), "• "),
    # f. blockquotes
    ("blockquote", re.compile(r"^(?:>[ \t]+)+", re.MULTILINE), ""),
    # g. whitespace
    ("collapse_whitespace", re.compile(r"\s+"), " "),
]


def normalize_once(text: str) -> str:
    for _name, pattern, repl in RULES:
        text = pattern.sub(repl, text)
    return text.strip()


def normalize_text(text: str) -> str:
    # a later rule can expose work for an earlier one ("a**B**" -> "aB");
    # every pass either removes markup or splits a pair that cannot rejoin,
    # so the loop terminates
    current = text
    while True:
        updated = normalize_once(current)
        if updated == current:
            return current
        current = updated
