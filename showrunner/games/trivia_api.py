"""Multiple-choice questions from the Open Trivia DB, with a built-in fallback."""

from __future__ import annotations

import html
import logging
import random
from dataclasses import dataclass

import httpx

log = logging.getLogger(__name__)

OPENTDB_URL = "https://opentdb.com/api.php"


class TriviaSourceError(RuntimeError):
    """Raised when the question source returns nothing usable."""


@dataclass(slots=True, frozen=True)
class TriviaQuestion:
    question: str
    correct_answer: str
    options: tuple[str, str, str, str]
    correct_index: int
    category: str
    difficulty: str


FALLBACK_QUESTIONS: list[TriviaQuestion] = [
    TriviaQuestion(
        "What is the largest planet in our solar system?", "Jupiter",
        ("Saturn", "Jupiter", "Neptune", "Mars"), 1, "Science", "easy",
    ),
    TriviaQuestion(
        "In what year did the Titanic sink?", "1912",
        ("1905", "1912", "1920", "1898"), 1, "History", "easy",
    ),
    TriviaQuestion(
        "Which element has the chemical symbol 'O'?", "Oxygen",
        ("Gold", "Osmium", "Oxygen", "Iron"), 2, "Science", "easy",
    ),
    TriviaQuestion(
        "What is the capital of Australia?", "Canberra",
        ("Sydney", "Melbourne", "Canberra", "Brisbane"), 2, "Geography", "easy",
    ),
    TriviaQuestion(
        "Who painted the Mona Lisa?", "Leonardo da Vinci",
        ("Michelangelo", "Leonardo da Vinci", "Raphael", "Donatello"), 1, "Art", "easy",
    ),
]


def shuffle_answers(
    correct: str, incorrect: list[str], rng: random.Random | None = None
) -> tuple[tuple[str, str, str, str], int]:
    answers = [correct, *incorrect[:3]]
    if len(answers) != 4:
        raise TriviaSourceError(f"expected 3 incorrect answers, got {len(incorrect)}")
    (rng or random).shuffle(answers)
    return (answers[0], answers[1], answers[2], answers[3]), answers.index(correct)


def parse_results(body: dict, rng: random.Random | None = None) -> list[TriviaQuestion]:
    """Turn an OpenTDB ``api.php`` response into questions."""
    if body.get("response_code") != 0 or not body.get("results"):
        raise TriviaSourceError(f"no results (response_code={body.get('response_code')})")

    questions = []
    for r in body["results"]:
        correct = html.unescape(r["correct_answer"])
        incorrect = [html.unescape(a) for a in r["incorrect_answers"]]
        options, correct_index = shuffle_answers(correct, incorrect, rng)
        questions.append(
            TriviaQuestion(
                question=html.unescape(r["question"]),
                correct_answer=correct,
                options=options,
                correct_index=correct_index,
                category=html.unescape(r.get("category", "")),
                difficulty=r.get("difficulty", ""),
            )
        )
    return questions


async def fetch_questions(
    amount: int = 15,
    *,
    timeout_s: float = 5.0,
    transport: httpx.AsyncBaseTransport | None = None,
    rng: random.Random | None = None,
) -> list[TriviaQuestion]:
    """Fetch *amount* questions; any failure yields the fallback set."""
    try:
        async with httpx.AsyncClient(timeout=timeout_s, transport=transport) as client:
            resp = await client.get(OPENTDB_URL, params={"amount": amount, "type": "multiple"})
            resp.raise_for_status()
            questions = parse_results(resp.json(), rng)
    except (httpx.HTTPError, TriviaSourceError, ValueError, KeyError, TypeError) as e:
        log.warning("trivia fetch failed (%s), using %d fallback questions", e, len(FALLBACK_QUESTIONS))
        return list(FALLBACK_QUESTIONS)

    log.info("fetched %d trivia questions", len(questions))
    return questions
