"""
Numeric OCR correction and score-line parsing.

Text recognition of leaderboard screenshots happens elsewhere; this module
takes its text output, fixes the usual digit misreads and turns each line
into a (name, score, confidence) row for review.
"""

import re
from dataclasses import dataclass
from typing import List, Optional


# Letters that text recognition commonly returns in place of digits
DIGIT_LOOKALIKES = {
    'O': '0',
    'S': '5',
    'I': '1',
    'l': '1',
}

CORRECTED_CONFIDENCE = 0.85
LOW_VALUE_THRESHOLD = 100
LOW_VALUE_PENALTY = 0.7
HIGH_VALUE_THRESHOLD = 1_000_000
HIGH_VALUE_PENALTY = 0.6

BASE_LINE_CONFIDENCE = 0.95
UNCERTAIN_LINE_CONFIDENCE = 0.5
SHORT_NAME_PENALTY = 0.6
UNCORRECTED_CONFIDENCE = 0.9

_MALFORMED_COMMA = re.compile(r'(\d),(\d),(\d{2,})')
_SHORT_TRAILING_GROUP = re.compile(r'(\d+),(\d{1,2})$')
_LEADING_DIGITS = re.compile(r'\d+')
_SCORE_TOKEN = re.compile(r'[\d,]*\d[\d,]*')
_NAME_TOKEN = re.compile(r'[A-Za-z][A-Za-z\s]*')


@dataclass
class NumericCorrection:
    value: int
    corrected: bool
    confidence: float


@dataclass
class OCRScoreLine:
    """One parsed leaderboard line awaiting review"""
    parsed_name: str
    parsed_score: int
    raw_text: str
    corrected_value: Optional[int]
    confidence: float


def correct_numeric_ocr(text: str) -> NumericCorrection:
    """
    Auto-correct common OCR mistakes in a numeric value.

    Corrections:
    - Look-alike letters: O -> 0, S -> 5, I/l -> 1
    - Whitespace is dropped
    - Malformed comma groups: "2,5,00" -> "2,500"
    - Missing trailing zeros after the last comma: "15,4" -> "15,400", "15,40" -> "15,400"

    Confidence starts at 1.0, drops to 0.85 when anything was corrected and is
    further scaled by 0.7 for values under 100 and 0.6 for values over
    1,000,000. Text with no digits at all yields value 0 with confidence 0.

    Examples:
        "12,000" -> 12000 (1.0)
        "1O,5OO" -> 10500 (0.85)
        "15,4"   -> 15400 (0.85)
    """
    original = text.strip()
    working = original
    for letter, digit in DIGIT_LOOKALIKES.items():
        working = working.replace(letter, digit)
    corrected = working != original

    working = re.sub(r'\s', '', working)

    if _MALFORMED_COMMA.search(working):
        working = working.replace(',', '')
        working = working[:-3] + ',' + working[-3:]
        corrected = True

    trailing = _SHORT_TRAILING_GROUP.search(working)
    if trailing:
        working += '0' * (3 - len(trailing.group(2)))
        corrected = True

    digits = _LEADING_DIGITS.match(working.replace(',', ''))
    if not digits:
        return NumericCorrection(value=0, corrected=corrected, confidence=0.0)
    value = int(digits.group(0))

    confidence = CORRECTED_CONFIDENCE if corrected else 1.0
    if value < LOW_VALUE_THRESHOLD:
        confidence *= LOW_VALUE_PENALTY
    if value > HIGH_VALUE_THRESHOLD:
        confidence *= HIGH_VALUE_PENALTY

    return NumericCorrection(value=value, corrected=corrected, confidence=max(0.0, min(1.0, confidence)))


def parse_scores_from_text(text: str, auto_correct: bool = True) -> List[OCRScoreLine]:
    """
    Parse recognized text into score lines.

    Each line needs a name (first run of letters and spaces) and a score (the
    last run of digits and commas). Lines missing either are ignored. Lines
    containing '?' or '~' were flagged uncertain by the recognizer and get a
    low base confidence.

    Args:
        text: Newline-separated recognizer output
        auto_correct: Apply correct_numeric_ocr to the score token
    """
    results = []
    for line in text.splitlines():
        if not line.strip():
            continue

        score_tokens = _SCORE_TOKEN.findall(line)
        name_tokens = [token.strip() for token in _NAME_TOKEN.findall(line) if token.strip()]
        if not score_tokens or not name_tokens:
            continue

        raw_score = score_tokens[-1]
        if auto_correct:
            correction = correct_numeric_ocr(raw_score)
        else:
            correction = NumericCorrection(
                value=int(raw_score.replace(',', '')),
                corrected=False,
                confidence=UNCORRECTED_CONFIDENCE
            )

        name = name_tokens[0]
        base_confidence = BASE_LINE_CONFIDENCE
        if '?' in line or '~' in line:
            base_confidence = UNCERTAIN_LINE_CONFIDENCE
        if len(name) < 2:
            base_confidence *= SHORT_NAME_PENALTY

        results.append(OCRScoreLine(
            parsed_name=name,
            parsed_score=correction.value,
            raw_text=line.strip(),
            corrected_value=correction.value if correction.corrected else None,
            confidence=base_confidence * correction.confidence,
        ))

    return results
