from __future__ import annotations

import re
from dataclasses import dataclass


class InvalidValueError(ValueError):
    """Base exception for validation failures."""


class PrizeTooSmallError(InvalidValueError):
    """Raised when a prize request is below the configured floor."""


class AnswerRejectedError(InvalidValueError):
    """Raised when a submitted fake answer does not meet the constraints."""


_INTEGER_PATTERN = re.compile(r"[+-]?\d+")
_DICE_PATTERN = re.compile(r"^(\d+)\s*[dDxX]\s*(\d+)$")
_GUESS_PATTERN = re.compile(r"^guess\s+(\S+)", re.IGNORECASE)
_SUFFIXES = {"k": "000", "m": "000000"}

MAX_DICE = 20
MAX_SIDES = 1000


def format_meat(amount: int) -> str:
    return f"{amount:,}"


def parse_prize_amount(raw: str | None) -> int:
    """Parse an amount such as ``75000``, ``75k`` or ``1m``.

    The suffix is replaced by zeros and the result reparsed, so ``1.5k``
    becomes ``1.5000`` and fails. Any failure yields 0.
    """
    if not raw:
        return 0
    value = raw.strip().lower()
    if value and value[-1] in _SUFFIXES:
        value = value[:-1] + _SUFFIXES[value[-1]]
    if not _INTEGER_PATTERN.fullmatch(value):
        return 0
    return int(value)


def require_prize(raw: str | None, *, minimum: int) -> int:
    amount = parse_prize_amount(raw)
    if amount <= 0:
        raise InvalidValueError(_prize_message(minimum))
    if amount < minimum:
        raise PrizeTooSmallError(_prize_message(minimum))
    return amount


def _prize_message(minimum: int) -> str:
    return f"invalid prize amount (must be > {format_meat(minimum)})"


@dataclass(frozen=True, slots=True)
class RollSpec:
    count: int
    sides: int


UNSUPPORTED_ROLL = "sorry i dont support anything other than 1d rolls (in development)"


def parse_roll_spec(raw: str) -> RollSpec:
    spec = raw.strip()
    if spec.lower().startswith("1d"):
        sides = parse_prize_amount(spec[2:])
        if sides <= 0:
            raise InvalidValueError(UNSUPPORTED_ROLL)
        return RollSpec(count=1, sides=sides)

    match = _DICE_PATTERN.match(spec)
    if not match:
        raise InvalidValueError(UNSUPPORTED_ROLL)
    count, sides = int(match.group(1)), int(match.group(2))
    if count < 1 or sides < 1:
        raise InvalidValueError(UNSUPPORTED_ROLL)
    if count > MAX_DICE or sides > MAX_SIDES:
        raise InvalidValueError(
            f"Roll too large. Max {MAX_DICE} dice, {MAX_SIDES} sides each."
        )
    return RollSpec(count=count, sides=sides)


def validate_fake_answer(raw: str, *, max_length: int) -> str:
    answer = raw.strip()
    if not answer:
        raise AnswerRejectedError(
            "Empty answer not allowed. Please send a fake answer."
        )
    if len(answer) > max_length:
        raise AnswerRejectedError(
            f"Answer too long. Please keep it under {max_length} characters."
        )
    return answer


def parse_guess(text: str) -> int | None:
    """Return the number in ``guess <n>`` or None when text is not a guess."""
    match = _GUESS_PATTERN.match(text.strip())
    if not match:
        return None
    token = match.group(1)
    if not _INTEGER_PATTERN.fullmatch(token):
        return None
    return int(token)


def normalize_answer(text: str) -> str:
    return text.strip().lower()


__all__ = [
    "AnswerRejectedError",
    "InvalidValueError",
    "PrizeTooSmallError",
    "RollSpec",
    "UNSUPPORTED_ROLL",
    "format_meat",
    "normalize_answer",
    "parse_guess",
    "parse_prize_amount",
    "parse_roll_spec",
    "require_prize",
    "validate_fake_answer",
]
