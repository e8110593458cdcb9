"""
Tutoring Service

Hints, explanations, recommendations and insights. Repeatable requests are
answered from a TTL cache keyed on the request content; insights reflect
live progress and are never cached.
"""

from typing import Any, Dict, List, Optional, Sequence

from learniq.common.cache import MemoryCache, cache_key
from learniq.common.logger import app_logger
from learniq.tutoring import prompts
from learniq.tutoring.client import TutorClient

logger = app_logger.getChild("tutoring.service")

HINT_TTL = 300
EXPLAIN_TTL = 300
RECOMMENDATIONS_TTL = 600

HINT_TOKENS = 120
EXPLAIN_TOKENS = 300
RECOMMENDATIONS_TOKENS = 300
INSIGHTS_TOKENS = 400


class TutoringService:

    def __init__(self, client: Optional[TutorClient] = None, cache: Optional[MemoryCache] = None):
        self.client = client or TutorClient()
        self.cache = cache if cache is not None else MemoryCache(max_size=1000, name="tutoring")

    async def _cached(self, kind: str, key_payload: Any, ttl: int, prompt, max_tokens: int) -> Dict[str, Any]:
        key = cache_key(kind, key_payload)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Tutoring cache hit for {kind}")
            return cached

        result = await self.client.complete_json(*prompt, max_tokens=max_tokens)
        self.cache.set(key, result, ttl=ttl)
        return result

    async def hint(
        self,
        subject: str,
        question: str,
        options: Sequence[str],
        difficulty: str = "medium",
        age: Optional[int] = None
    ) -> Dict[str, Any]:
        payload = {"subject": subject, "question": question, "options": list(options),
                   "difficulty": difficulty, "age": age}
        result = await self._cached(
            "hint", payload, HINT_TTL,
            prompts.hint_prompt(subject, age, difficulty, question, options), HINT_TOKENS
        )
        return {"hint": str(result.get("hint", "")).strip()}

    async def explain(
        self,
        subject: str,
        question: str,
        options: Sequence[str],
        correct_answer: str,
        user_answer: Optional[str] = None,
        age: Optional[int] = None
    ) -> Dict[str, Any]:
        payload = {"subject": subject, "question": question, "options": list(options),
                   "correct_answer": correct_answer, "user_answer": user_answer, "age": age}
        result = await self._cached(
            "explain", payload, EXPLAIN_TTL,
            prompts.explanation_prompt(subject, age, question, options, correct_answer, user_answer),
            EXPLAIN_TOKENS
        )
        return {"explanation": str(result.get("explanation", "")).strip()}

    async def recommendations(
        self,
        user_id: str,
        age: Optional[int],
        skill_levels: Dict[str, int],
        recent: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        payload = {"user_id": user_id, "age": age, "skill_levels": skill_levels, "recent": recent[-8:]}
        result = await self._cached(
            "recommendations", payload, RECOMMENDATIONS_TTL,
            prompts.recommendations_prompt(age, skill_levels, recent), RECOMMENDATIONS_TOKENS
        )
        items = result.get("recommendations")
        return {"recommendations": items if isinstance(items, list) else []}

    async def insights(
        self,
        age: Optional[int],
        average_score: float,
        quizzes: int,
        by_subject: Dict[str, float],
        trend: str
    ) -> Dict[str, Any]:
        system, user = prompts.insights_prompt(age, average_score, quizzes, by_subject, trend)
        result = await self.client.complete_json(system, user, max_tokens=INSIGHTS_TOKENS)
        goals = result.get("goals")
        return {
            "summary": str(result.get("summary", "")).strip(),
            "goals": [str(goal) for goal in goals][:2] if isinstance(goals, list) else [],
        }
