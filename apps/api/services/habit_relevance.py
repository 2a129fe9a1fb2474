"""
Habit relevance scoring for free-text questions.

Two passes:
    1. the habit's name appears in the query (case-insensitive) -> 1.0
    2. for habits not matched yet, the query contains a keyword from a
       category AND the habit name contains that keyword or the category
       token -> 0.7

The keyword taxonomy is plain data and can be swapped per locale.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

DIRECT_MATCH_SCORE = 1.0
KEYWORD_MATCH_SCORE = 0.7
MAX_RELEVANT_HABITS = 3

# category -> keywords; order matters, first matching category wins
DEFAULT_HABIT_KEYWORDS: Dict[str, List[str]] = {
    "sleep": ["sleep", "wake", "early", "morning", "bed", "tired", "rest"],
    "exercise": ["exercise", "workout", "gym", "run", "sweat", "fitness", "active"],
    "diet": ["eat", "food", "diet", "nutrition", "meal", "hungry", "calories"],
    "screen": ["screen", "phone", "social media", "instagram", "tiktok", "youtube"],
    "meditation": ["meditate", "mindful", "breathe", "calm", "stress", "anxiety"],
    "journal": ["journal", "write", "reflect", "thoughts"],
    "substances": ["drink", "alcohol", "sober", "smoking", "weed", "drugs"],
    "productivity": ["work", "focus", "productive", "tasks", "goals"],
    "social": ["friends", "family", "social", "relationship", "connect"],
}


def _get(habit: Any, key: str) -> Any:
    if isinstance(habit, Mapping):
        return habit.get(key)
    return getattr(habit, key, None)


class HabitRelevanceScorer:
    """Ranks habits by how directly a query talks about them."""

    def __init__(self, keyword_taxonomy: Optional[Mapping[str, Sequence[str]]] = None):
        self.keyword_taxonomy = dict(keyword_taxonomy or DEFAULT_HABIT_KEYWORDS)

    def _keyword_match(self, query_lower: str, habit_name: str) -> bool:
        for category, keywords in self.keyword_taxonomy.items():
            for keyword in keywords:
                if keyword in query_lower and (category in habit_name or keyword in habit_name):
                    return True
        return False

    def score(self, query: str, habits: Sequence[Any]) -> List[Dict[str, Any]]:
        """
        Scored matches, highest first: [{"habit": habit, "score": float}, ...].

        Habits with no match are left out.
        """
        query_lower = (query or "").lower()
        scored: List[Dict[str, Any]] = []
        matched = set()

        for index, habit in enumerate(habits):
            name = (_get(habit, "name") or "").lower()
            if name and name in query_lower:
                scored.append({"habit": habit, "score": DIRECT_MATCH_SCORE})
                matched.add(index)

        for index, habit in enumerate(habits):
            if index in matched:
                continue
            name = (_get(habit, "name") or "").lower()
            if name and self._keyword_match(query_lower, name):
                scored.append({"habit": habit, "score": KEYWORD_MATCH_SCORE})

        scored.sort(key=lambda item: item["score"], reverse=True)
        return scored

    def rank(self, query: str, habits: Sequence[Any], limit: int = MAX_RELEVANT_HABITS) -> List[Dict[str, Any]]:
        """Top habits as {id, name, type}; scores stay internal."""
        return [
            {
                "id": str(_get(item["habit"], "id")),
                "name": _get(item["habit"], "name"),
                "type": _get(item["habit"], "type"),
            }
            for item in self.score(query, habits)[:limit]
        ]
