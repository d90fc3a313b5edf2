"""Tests for chatgames.validation."""

import pytest

from chatgames.validation import (
    UNSUPPORTED_ROLL,
    AnswerRejectedError,
    InvalidValueError,
    PrizeTooSmallError,
    format_meat,
    normalize_answer,
    parse_guess,
    parse_prize_amount,
    parse_roll_spec,
    require_prize,
    validate_fake_answer,
)


class TestPrizeParsing:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("75000", 75_000),
            ("75k", 75_000),
            ("75K", 75_000),
            ("1m", 1_000_000),
            ("1.5k", 0),
            ("abc", 0),
            ("", 0),
            (None, 0),
        ],
    )
    def test_parse_prize_amount(self, raw, expected):
        """Suffixes expand to zeros; anything unparseable is 0."""
        assert parse_prize_amount(raw) == expected

    def test_require_prize_accepts_minimum(self):
        assert require_prize("50k", minimum=50_000) == 50_000

    def test_require_prize_below_minimum(self):
        """Amounts under the floor raise PrizeTooSmallError with the floor in the text."""
        with pytest.raises(PrizeTooSmallError) as exc:
            require_prize("40000", minimum=50_000)
        assert str(exc.value) == "invalid prize amount (must be > 50,000)"

    def test_require_prize_garbage(self):
        with pytest.raises(InvalidValueError):
            require_prize("lots", minimum=50_000)

    def test_format_meat(self):
        assert format_meat(1234567) == "1,234,567"


class TestRollSpec:
    def test_single_die(self):
        spec = parse_roll_spec("1d100")
        assert (spec.count, spec.sides) == (1, 100)

    def test_single_die_with_suffix(self):
        """1d rolls accept the same k/m suffixes as prizes."""
        assert parse_roll_spec("1d10k").sides == 10_000

    def test_multiple_dice(self):
        spec = parse_roll_spec("3d6")
        assert (spec.count, spec.sides) == (3, 6)

    def test_too_large(self):
        with pytest.raises(InvalidValueError, match="Roll too large"):
            parse_roll_spec("21d6")

    @pytest.mark.parametrize("raw", ["d6", "0d6", "1dx", "banana"])
    def test_unsupported(self, raw):
        with pytest.raises(InvalidValueError) as exc:
            parse_roll_spec(raw)
        assert str(exc.value) == UNSUPPORTED_ROLL


class TestAnswers:
    def test_validate_trims(self):
        assert validate_fake_answer("  Lyon  ", max_length=200) == "Lyon"

    def test_validate_empty(self):
        with pytest.raises(AnswerRejectedError, match="Empty answer"):
            validate_fake_answer("   ", max_length=200)

    def test_validate_too_long(self):
        """Answers over the limit are rejected with the limit in the message."""
        with pytest.raises(AnswerRejectedError) as exc:
            validate_fake_answer("x" * 201, max_length=200)
        assert "200 characters" in str(exc.value)

    def test_parse_guess(self):
        assert parse_guess("guess 3") == 3
        assert parse_guess("GUESS   12") == 12
        assert parse_guess("guess three") is None
        assert parse_guess("hello") is None

    def test_normalize_answer(self):
        assert normalize_answer("  PaRiS ") == "paris"
