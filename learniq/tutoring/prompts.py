"""
Tutoring prompts.

Each builder returns ``(system, user)`` messages asking for a small JSON
object, so replies can be parsed without free-text scraping.
"""

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

Prompt = Tuple[str, str]

YOUNGER_LEARNER_MAX_AGE = 12


def _options(options: Sequence[str]) -> str:
    return " | ".join(f"{chr(65 + i)}. {option}" for i, option in enumerate(options))


def _age(age: Optional[int]) -> str:
    return str(age) if age is not None else "unknown"


def hint_prompt(
    subject: str,
    age: Optional[int],
    difficulty: str,
    question: str,
    options: Sequence[str]
) -> Prompt:
    system = (
        "You are a patient tutor for students aged 7 to 18. Give exactly one short hint "
        "of one or two sentences and never reveal the answer. For math suggest a first step, "
        "for reading point at context clues, for science name the principle involved. "
        'Reply as JSON: {"hint": "..."}'
    )
    user = (
        f"Subject: {subject}\n"
        f"Student age: {_age(age)}\n"
        f"Difficulty: {difficulty}\n"
        f"Question: {question}\n"
        f"Options: {_options(options)}"
    )
    return system, user


def explanation_prompt(
    subject: str,
    age: Optional[int],
    question: str,
    options: Sequence[str],
    correct_answer: str,
    user_answer: Optional[str] = None
) -> Prompt:
    system = (
        f"Explain the answer to a {age or 'teenage'} year old in at most 120 words and two steps. "
        'Finish with "Quick check:" and a one-line self check. '
        'Reply as JSON: {"explanation": "..."}'
    )
    user = (
        f"Subject: {subject}\n"
        f"Question: {question}\n"
        f"Options: {_options(options)}\n"
        f"Correct answer: {correct_answer}"
    )
    if user_answer:
        user += f"\nStudent picked: {user_answer}"
    return system, user


def recommendations_prompt(
    age: Optional[int],
    skill_levels: Dict[str, int],
    recent: List[Dict[str, Any]]
) -> Prompt:
    lines = "\n".join(
        f"{r.get('when', '')}: {r.get('subject')}/{r.get('difficulty')} {r.get('score')}%"
        for r in recent[-8:]
    )
    system = (
        "Suggest two or three practice sessions, each with a subject, a difficulty and a "
        "one-line reason. Keep it motivating and under 120 words. "
        'Reply as JSON: {"recommendations": [{"subject": "...", "difficulty": "...", "reason": "..."}]}'
    )
    user = (
        f"Student age: {_age(age)}\n"
        f"Skill levels (1-5): {json.dumps(skill_levels, sort_keys=True)}\n"
        f"Recent scores:\n{lines or 'No data'}"
    )
    return system, user


def insights_prompt(
    age: Optional[int],
    average_score: float,
    quizzes: int,
    by_subject: Dict[str, float],
    trend: str
) -> Prompt:
    if age is not None and age <= YOUNGER_LEARNER_MAX_AGE:
        tone = "Use warm, simple words and be enthusiastic."
    else:
        tone = "Use respectful, mature language without talking down."
    system = (
        "You write learning insights with a growth mindset: praise effort, strategy and "
        "improvement, never intelligence, and tie every point to the data. "
        f"{tone} Write an 80 to 120 word summary and two concrete, process-focused goals. "
        'Reply as JSON: {"summary": "...", "goals": ["...", "..."]}'
    )
    subjects = ", ".join(f"{name}: {score}%" for name, score in sorted(by_subject.items()))
    user = (
        f"Age: {_age(age)}\n"
        f"Overall: {average_score}% across {quizzes} quizzes\n"
        f"By subject: {subjects or 'No data'}\n"
        f"Trend: {trend}"
    )
    return system, user
