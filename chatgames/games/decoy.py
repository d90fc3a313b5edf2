from __future__ import annotations

import enum
import logging
import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from ..models import TriviaQuestion
from ..payouts import PrizePlan, distribute_prize, rank_slots
from ..validation import (
    AnswerRejectedError,
    format_meat,
    normalize_answer,
    parse_guess,
    validate_fake_answer,
)
from .base import ChatEvent, GameSession, PhaseEvent

log = logging.getLogger("chat-games.decoy")


class DecoyPhase(enum.Enum):
    SETUP = "setup"
    ENTRY = "entry"
    ANSWERING = "answering"
    VOTING = "voting"
    FINISHED = "finished"


@dataclass(slots=True)
class Participant:
    name: str
    answer: str | None = None
    guess: int | None = None


def dedupe_answers(answers: Iterable[str]) -> list[str]:
    """Drop answers whose trimmed, case-folded text was already seen."""
    seen: set[str] = set()
    unique: list[str] = []
    for answer in answers:
        key = normalize_answer(answer)
        if key in seen:
            continue
        seen.add(key)
        unique.append(answer)
    return unique


def build_answer_set(
    real_answer: str, fakes: Iterable[str], rng: random.Random
) -> list[str]:
    answers = dedupe_answers([real_answer, *fakes])
    rng.shuffle(answers)
    return answers


def score_round(
    real_answer: str,
    participants: Sequence[Participant],
    answers: Sequence[str],
) -> dict[str, int]:
    """Points per participant.

    A guess on the real answer earns 2. Each author earns 1 for every other
    participant whose guess landed on the author's fake text. The entry
    matching the real answer only ever pays the 2 points.
    """
    real = normalize_answer(real_answer)
    points = {participant.name: 0 for participant in participants}
    chosen: dict[str, str] = {}
    for participant in participants:
        if participant.guess is not None and 1 <= participant.guess <= len(answers):
            chosen[participant.name] = normalize_answer(answers[participant.guess - 1])

    for voter, text in chosen.items():
        if text == real:
            points[voter] += 2

    for author in participants:
        if author.answer is None:
            continue
        fake = normalize_answer(author.answer)
        if fake == real:
            continue
        for voter, text in chosen.items():
            if voter != author.name and text == fake:
                points[author.name] += 1
    return points


def _minutes(seconds: float) -> str:
    minutes = max(1, round(seconds / 60))
    return "1 minute" if minutes == 1 else f"{minutes} minutes"


class DecoySession(GameSession):
    """Trivia bluffing game.

    Ticket buyers become players, write fake answers to a trivia question
    in private, then vote on which entry is the real one.
    """

    title = "Decoy's Dilemma"
    initial_phase = DecoyPhase.SETUP
    finished_phase = DecoyPhase.FINISHED
    error_text = "Decoy's Dilemma encountered an error and has been cancelled. Sorry!"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.participants: dict[str, Participant] = {}
        self.question: TriviaQuestion | None = None
        self.answers: list[str] = []
        self.scores: dict[str, int] = {}
        self.plan: PrizePlan | None = None

    def slot_quantity(self) -> int:
        return self.settings.decoy_max_players

    def status(self) -> str:
        players = len(self.participants) or len(self.buyers())
        return (
            f"{self.phase.value} phase, {players} players, "
            f"{self.seconds_remaining()}s left"
        )

    async def begin(self) -> None:
        settings = self.settings
        self.enter(DecoyPhase.ENTRY)
        await self.context.send_channel_message(
            f"Decoy's Dilemma by {self.host}: buy tickets for next "
            f"{round(settings.decoy_entry_duration / 60)}m. "
            f"Prize: {format_meat(self.prize)} meat!"
        )
        self.set_deadline(settings.decoy_entry_duration)
        self.schedule(settings.decoy_entry_duration + settings.phase_buffer, "close_entry")
        self.schedule(settings.sales_poll_interval, "poll")

    async def on_phase(self, event: PhaseEvent) -> None:
        if event.kind == "poll":
            await self.poll_sales()
            self.schedule(self.settings.sales_poll_interval, "poll")
        elif event.kind == "close_entry":
            await self._close_entry()
        elif event.kind == "close_answers":
            await self._close_answers()
        elif event.kind == "close_votes":
            await self._close_votes()
        else:
            log.warning("Unknown decoy event %s", event.kind)

    async def on_chat(self, event: ChatEvent) -> None:
        if self.phase is DecoyPhase.ANSWERING:
            await self._submit_answer(event)
        elif self.phase is DecoyPhase.VOTING:
            await self._submit_guess(event)

    def claims_chat(self, sender: str, text: str, *, private: bool, command: bool) -> bool:
        participant = self.participants.get(sender.strip().lower())
        if participant is None:
            return False
        if self.phase is DecoyPhase.ANSWERING:
            # An owed fake answer wins over a command that shares its first word.
            return private and (participant.answer is None or not command)
        if self.phase is DecoyPhase.VOTING:
            return parse_guess(text) is not None
        return False

    # ----- Entry -----
    async def _close_entry(self) -> None:
        settings = self.settings
        await self.poll_sales()
        await self._release_slot()

        names = self.buyers()
        if len(names) < settings.decoy_min_players:
            await self.context.send_channel_message(
                f"Decoy's Dilemma cancelled - need at least {settings.decoy_min_players} "
                f"players. Only {len(names)} bought tickets."
            )
            await self.finish()
            return

        self.participants = {name: Participant(name=name) for name in names}
        self.question = await self.context.trivia.fetch_question()
        self.enter(DecoyPhase.ANSWERING)
        self.set_deadline(settings.decoy_answer_duration)
        await self.context.send_channel_message(
            f"QUESTION ({len(self.participants)} players): {self.question.question}"
        )
        window = _minutes(settings.decoy_answer_duration)
        for name in self.participants:
            await self.context.send_private_message(
                name,
                f"Please PM me your FAKE answer within {window} for: {self.question.question}",
            )
        self.schedule(settings.decoy_answer_duration + settings.phase_buffer, "close_answers")

    # ----- Answering -----
    async def _submit_answer(self, event: ChatEvent) -> None:
        if not event.private:
            return
        participant = self.participants.get(event.sender.strip().lower())
        if participant is None:
            return
        if participant.answer is not None:
            await self.context.send_private_message(
                event.sender, "You already submitted your answer."
            )
            return
        try:
            answer = validate_fake_answer(
                event.text, max_length=self.settings.max_answer_length
            )
        except AnswerRejectedError as exc:
            await self.context.send_private_message(event.sender, str(exc))
            return
        participant.answer = answer
        await self.context.send_private_message(
            event.sender, f"Got your fake answer: {answer}"
        )

    async def _close_answers(self) -> None:
        settings = self.settings
        question = self.question
        if question is None:
            raise RuntimeError("answer window closed without a question")
        for participant in self.participants.values():
            if participant.answer is None:
                participant.answer = settings.no_answer_text

        fakes = [participant.answer for participant in self.participants.values()]
        self.answers = build_answer_set(question.answer, fakes, self.rng)
        self.enter(DecoyPhase.VOTING)
        self.set_deadline(settings.decoy_vote_duration)
        choices = "  ".join(
            f"[{index}] {answer}" for index, answer in enumerate(self.answers, start=1)
        )
        await self.context.send_channel_message(
            f"VOTE! Type 'guess <#>' for the real answer: {choices}"
        )
        self.schedule(settings.decoy_vote_duration + settings.phase_buffer, "close_votes")

    # ----- Voting -----
    async def _submit_guess(self, event: ChatEvent) -> None:
        index = parse_guess(event.text)
        if index is None:
            return
        participant = self.participants.get(event.sender.strip().lower())
        if participant is None:
            return
        if not 1 <= index <= len(self.answers):
            await self.context.send_private_message(
                event.sender, f"Invalid guess number. Choose 1-{len(self.answers)}"
            )
            return
        participant.guess = index
        await self.context.send_private_message(
            event.sender, f"Registered guess #{index}: {self.answers[index - 1]}"
        )

    async def _close_votes(self) -> None:
        question = self.question
        if question is None:
            raise RuntimeError("vote window closed without a question")
        self.payout_started = True
        participants = list(self.participants.values())
        self.scores = score_round(question.answer, participants, self.answers)
        slots = rank_slots((p.name, self.scores[p.name]) for p in participants)
        self.plan = distribute_prize(self.prize, slots)

        await self.context.send_channel_message(f"REAL ANSWER: {question.answer}")

        messages: list[str] = []
        for payout in self.plan.payouts:
            delivered = await self.context.send_prize(
                payout.recipient,
                f"You placed in the game! You receive {format_meat(payout.amount)} meat.",
                payout.amount,
            )
            if delivered:
                messages.append(f"{payout.recipient} gets {format_meat(payout.amount)}")
            else:
                messages.append(f"{payout.recipient} prize failed - admin notified")
                await self.context.report_error(
                    f"Prize payment of {format_meat(payout.amount)} meat to "
                    f"{payout.recipient} failed"
                )

        remainder = self.plan.remainder
        if remainder > 0:
            ledger = self.context.ledger
            async with ledger.lock:
                ledger.add_to_jackpot(remainder)
                ledger.increment_streak()
            messages.append(f"{format_meat(remainder)} meat added to jackpot")

        if not self.plan.payouts:
            messages.insert(0, "No winners this round.")
        await self.context.send_channel_message("; ".join(messages))
        await self.finish()


__all__ = [
    "DecoyPhase",
    "DecoySession",
    "Participant",
    "build_answer_set",
    "dedupe_answers",
    "score_round",
]
