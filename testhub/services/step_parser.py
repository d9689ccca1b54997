"""
Structured step parsing for imported test cases.

Spreadsheet tools export the "steps" and "expected result" columns in many
shapes. Each column is read into a list of entries, then the two lists are
merged by step number:

    JSON array       '["Open app", "Tap login"]'  or  '[{"action": ..., "expectedResult": ...}]'
    numbered list    "1. Open app\\n2. Tap login\\n3. "
    newline list     "Open app\\nTap login"
    pipe-separated   "Open app | Tap login"
    bare string      "Open app"

Rules:
- A numbered position is never dropped, even when its text is empty.
- Numbered expected results with no steps produce steps with empty actions.
- Results spread over several steps leave the case-level expected result
  empty; a single unnumbered result is broadcast to every step. With no
  steps, unnumbered results are kept at case level as their parsed text
  (JSON quoting, bullets and pipes removed, one entry per line).
- Unnumbered multi-line expected results are assigned by line order.
  A step whose text spans several lines can shift that assignment.
"""

import json
import re
from dataclasses import dataclass

_NUMBERED_LINE = re.compile(r"^\s*(\d+)\s*[.)）:：、](?!\d)\s?(.*)$")
_BULLET = re.compile(r"^\s*(?:[-*•・]\s+|[-*•・](?=\S))")

_ACTION_KEYS = ("action", "step", "description", "手順")
_EXPECTED_KEYS = ("expectedResult", "expected_result", "expected", "期待結果")


@dataclass(frozen=True)
class StepEntry:
    number: int | None
    text: str
    expected: str = ""


@dataclass(frozen=True)
class ParsedColumn:
    entries: tuple[StepEntry, ...]
    numbered: bool

    @property
    def single(self) -> bool:
        return len(self.entries) == 1 and not self.numbered


@dataclass(frozen=True)
class StepDraft:
    step_no: int
    action: str
    expected_result: str


@dataclass(frozen=True)
class ParsedSteps:
    steps: tuple[StepDraft, ...]
    expected_result: str | None


_EMPTY = ParsedColumn(entries=(), numbered=False)


def _from_json(text: str) -> ParsedColumn | None:
    if not text.startswith("["):
        return None
    try:
        items = json.loads(text)
    except ValueError:
        return None
    if not isinstance(items, list):
        return None

    entries = []
    for item in items:
        if isinstance(item, dict):
            action = next((item[k] for k in _ACTION_KEYS if item.get(k) is not None), "")
            expected = next((item[k] for k in _EXPECTED_KEYS if item.get(k) is not None), "")
            number = item.get("stepNumber") or item.get("step_no")
            entries.append(StepEntry(
                number=int(number) if str(number or "").isdigit() else None,
                text=str(action).strip(),
                expected=str(expected).strip(),
            ))
        elif item is not None:
            entries.append(StepEntry(number=None, text=str(item).strip()))
    numbered = bool(entries) and all(e.number is not None for e in entries)
    return ParsedColumn(entries=tuple(entries), numbered=numbered)


def _from_numbered(lines: list[str]) -> ParsedColumn | None:
    first = next((line for line in lines if line.strip()), "")
    if not _NUMBERED_LINE.match(first):
        return None

    entries: list[list] = []
    for line in lines:
        match = _NUMBERED_LINE.match(line)
        if match:
            entries.append([int(match.group(1)), match.group(2).strip()])
        elif line.strip() and entries:
            # Continuation of the previous item.
            prev = entries[-1]
            prev[1] = f"{prev[1]}\n{line.strip()}" if prev[1] else line.strip()
    return ParsedColumn(
        entries=tuple(StepEntry(number=n, text=t) for n, t in entries),
        numbered=True,
    )


def parse_column(value) -> ParsedColumn:
    """Read one steps / expected-result cell into ordered entries."""
    if value is None:
        return _EMPTY
    text = str(value).replace("\r\n", "\n").replace("\r", "\n").strip("\n")
    if not text.strip():
        return _EMPTY

    parsed = _from_json(text.strip())
    if parsed is not None:
        return parsed

    lines = text.split("\n")
    parsed = _from_numbered(lines)
    if parsed is not None:
        return parsed

    non_blank = [line.strip() for line in lines if line.strip()]
    if len(non_blank) > 1:
        items = [_BULLET.sub("", line).strip() for line in non_blank]
    elif "|" in non_blank[0]:
        items = [part.strip() for part in non_blank[0].split("|") if part.strip()]
    else:
        items = [non_blank[0]]
    return ParsedColumn(
        entries=tuple(StepEntry(number=None, text=item) for item in items),
        numbered=False,
    )


def _by_number(column: ParsedColumn) -> dict[int, StepEntry]:
    """Key entries by their step number (positional when unnumbered)."""
    keyed: dict[int, StepEntry] = {}
    for position, entry in enumerate(column.entries, start=1):
        number = entry.number if column.numbered and entry.number is not None else position
        if number in keyed:
            prev = keyed[number]
            keyed[number] = StepEntry(
                number=number,
                text="\n".join(t for t in (prev.text, entry.text) if t),
                expected="\n".join(t for t in (prev.expected, entry.expected) if t),
            )
        else:
            keyed[number] = entry
    return keyed


def parse_steps(steps_value, expected_value) -> ParsedSteps:
    """Merge the steps and expected-result cells of one row into step drafts."""
    steps = parse_column(steps_value)
    expected = parse_column(expected_value)

    if not steps.entries:
        if not expected.entries:
            return ParsedSteps(steps=(), expected_result=None)
        if not expected.numbered:
            # Nothing to distribute over: keep the parsed text at case level.
            texts = [e.text or e.expected for e in expected.entries]
            return ParsedSteps(steps=(), expected_result="\n".join(t for t in texts if t) or None)

    if expected.single:
        broadcast = expected.entries[0].text
        drafts = tuple(
            StepDraft(step_no=n, action=e.text, expected_result=e.expected or broadcast)
            for n, e in sorted(_by_number(steps).items())
        )
        return ParsedSteps(steps=drafts, expected_result=None)

    actions = _by_number(steps)
    results = _by_number(expected)
    drafts = []
    for number in sorted(set(actions) | set(results)):
        action = actions.get(number)
        result = results.get(number)
        drafts.append(StepDraft(
            step_no=number,
            action=action.text if action else "",
            expected_result=(result.text if result else "") or (action.expected if action else ""),
        ))
    return ParsedSteps(steps=tuple(drafts), expected_result=None)
