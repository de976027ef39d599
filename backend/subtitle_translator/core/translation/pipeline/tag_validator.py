"""Override-tag compatibility checks.

Subtitle styling directives (``{\\i1}``, ``{\\pos(10,20)}``, ``{\\fad(200,0)}``)
must survive translation in kind and count. Only directive identity matters:
order and case are ignored and numeric parameters are dropped, so
``{\\fs20}`` and ``{\\FS24}`` compare equal.
"""

import re
from collections import Counter
from typing import Dict, List, Sequence, Tuple

from subtitle_translator.errors import TagMismatchError

from ..models.entry import Entry

MAX_MISMATCH_SAMPLES = 3
_NUMBER = re.compile(r"[\d.\-]+")
_DIRECTIVE_PARAM = re.compile(r"(\\[a-z]*)[\d.\-]+")
_PAREN_ARGS = re.compile(r"\([^()]*\)")


def extract_tags(text: str) -> List[str]:
    """Return every ``{\\...}`` block in order of appearance.

    An unterminated block ends the scan.
    """
    tags = []
    pos = 0
    while True:
        start = text.find("{\\", pos)
        if start == -1:
            break
        end = text.find("}", start + 1)
        if end == -1:
            break
        tags.append(text[start : end + 1])
        pos = end + 1
    return tags


def normalize_tag(tag: str) -> str:
    """Reduce a tag to its directive names.

    The tag is lower-cased, numeric parameters right after a directive name
    are dropped (``\\fs20`` -> ``\\fs``, ``\\1c`` -> ``\\c``) and numbers inside
    parenthesized argument lists are dropped (``\\pos(10,20)`` -> ``\\pos(,)``).
    """
    normalized = _DIRECTIVE_PARAM.sub(r"\1", tag.lower())
    return _PAREN_ARGS.sub(lambda m: _NUMBER.sub("", m.group(0)), normalized)


def tags_compatible(original: str, translated: str) -> bool:
    """True when both strings carry the same multiset of normalized tags."""
    original_tags = extract_tags(original)
    translated_tags = extract_tags(translated)

    if not original_tags and not translated_tags:
        return True
    if not original_tags or not translated_tags:
        return False

    remaining = Counter(normalize_tag(tag) for tag in original_tags)
    for tag in translated_tags:
        key = normalize_tag(tag)
        if remaining[key] <= 0:
            return False
        remaining[key] -= 1

    return all(count == 0 for count in remaining.values())


def find_mismatches(
    originals: Sequence[Entry], translations: Sequence[Entry]
) -> List[Tuple[int, str, str]]:
    """Return ``(index, original, translated)`` for every incompatible line.

    A translated index missing from ``originals`` is checked against an
    empty original.
    """
    lookup: Dict[int, str] = {entry.index: entry.text for entry in originals}
    mismatches = []
    for index, text in translations:
        original = lookup.get(index, "")
        if not tags_compatible(original, text):
            mismatches.append((index, original, text))
    return mismatches


def ensure_tags_preserved(
    originals: Sequence[Entry], translations: Sequence[Entry]
) -> None:
    """Reject the whole batch if any line lost or corrupted its tags.

    Raises:
        TagMismatchError: With up to three sample lines in the message
    """
    mismatches = find_mismatches(originals, translations)
    if not mismatches:
        return

    sample = "\n\n".join(
        f"#{index}\nORIGINAL: {original}\nTRANSLATED: {translated}"
        for index, original, translated in mismatches[:MAX_MISMATCH_SAMPLES]
    )
    raise TagMismatchError(
        f"Translated lines contain incompatible ASS tags. Sample:\n{sample}",
        mismatches,
    )
