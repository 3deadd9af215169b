"""Weighted fuzzy search over tasks, including their custom fields.

Search keys are generated from the corpus: the core text fields carry fixed
weights and every custom field name discovered on a task or subtask becomes a
``customFields.<name>`` key. Matching is approximate and location-agnostic,
built on :class:`difflib.SequenceMatcher`.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

from .models import Task
from .query import extract_custom_field_names

logger = logging.getLogger("taskfields.search")

FIELD_WEIGHTS: Dict[str, float] = {
    # core fields
    "title": 2.0,
    "description": 1.5,
    "details": 1.0,
    "dependencyTitles": 0.5,
    # common custom fields
    "epic": 1.8,
    "component": 1.5,
    "taskType": 1.6,
    "assignee": 1.2,
    "sprint": 1.4,
}
DEFAULT_FIELD_WEIGHT = 1.0

CORE_SEARCH_FIELDS: Tuple[str, ...] = ("title", "description", "details")
DEPENDENCY_TITLES = "dependencyTitles"
CUSTOM_FIELD_PREFIX = "customFields."

DEFAULT_SEARCH_THRESHOLD = 0.3

RELEVANCE_THRESHOLDS = {"high": 0.25, "medium": 0.4, "low": 0.6}


@dataclass(slots=True, frozen=True)
class SearchConfig:
    threshold: float
    limit: int


SEARCH_CONFIGS: Dict[str, SearchConfig] = {
    "research": SearchConfig(threshold=0.5, limit=20),
    "addTask": SearchConfig(threshold=0.4, limit=15),
    "default": SearchConfig(threshold=0.4, limit=15),
}

PURPOSE_CATEGORIES: List[Tuple[Pattern[str], str]] = [
    (re.compile(r"(command|cli|flag)", re.IGNORECASE), "CLI commands"),
    (re.compile(r"(task|subtask|add)", re.IGNORECASE), "Task management"),
    (re.compile(r"(dependency|depend)", re.IGNORECASE), "Dependency handling"),
    (re.compile(r"(AI|model|prompt|research)", re.IGNORECASE), "AI integration"),
    (re.compile(r"(UI|display|show|interface)", re.IGNORECASE), "User interface"),
    (re.compile(r"(schedule|time|cron)", re.IGNORECASE), "Scheduling"),
    (re.compile(r"(config|setting|option)", re.IGNORECASE), "Configuration"),
    (re.compile(r"(test|testing|spec)", re.IGNORECASE), "Testing"),
    (re.compile(r"(auth|login|user)", re.IGNORECASE), "Authentication"),
    (re.compile(r"(database|db|data)", re.IGNORECASE), "Data management"),
    (re.compile(r"(api|endpoint|route)", re.IGNORECASE), "API development"),
    (re.compile(r"(deploy|build|release)", re.IGNORECASE), "Deployment"),
    (re.compile(r"(security|auth|login|user)", re.IGNORECASE), "Security"),
    (re.compile(r".*"), "Other"),
]


@dataclass(slots=True, frozen=True)
class SearchKey:
    """A searchable field path and its relative weight."""

    name: str
    weight: float

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "weight": self.weight}


@dataclass(slots=True)
class SearchResult:
    """A matched task with its score (0 is a perfect match)."""

    item: Task
    score: float
    ref_index: int
    matched_keys: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task": self.item.to_dict(),
            "score": round(self.score, 4),
            "matchedKeys": list(self.matched_keys),
        }


def get_weight_for_field(field_name: str) -> float:
    """Curated weight for a field name, or the default for unknown names."""
    return FIELD_WEIGHTS.get(field_name, DEFAULT_FIELD_WEIGHT)


def get_custom_field_names(tasks: Iterable[Task]) -> List[str]:
    """Every custom field name present on the tasks or their subtasks."""
    return extract_custom_field_names(tasks)


def generate_search_keys(
    tasks: Iterable[Task], include_dependency_titles: bool = False
) -> List[SearchKey]:
    """Core keys first, then one ``customFields.<name>`` key per discovered field."""
    core = list(CORE_SEARCH_FIELDS)
    if include_dependency_titles:
        core.append(DEPENDENCY_TITLES)
    keys = [SearchKey(name, get_weight_for_field(name)) for name in core]
    keys.extend(
        SearchKey(f"{CUSTOM_FIELD_PREFIX}{name}", get_weight_for_field(name))
        for name in get_custom_field_names(tasks)
    )
    return keys


def searchable_values(task: Task, dependency_titles: str = "") -> Dict[str, str]:
    """Flatten the searchable text of a task keyed by search key name."""
    values = {
        "title": task.title,
        "description": task.description,
        "details": task.details,
        DEPENDENCY_TITLES: dependency_titles,
    }
    for name, value in task.custom_fields.items():
        values[f"{CUSTOM_FIELD_PREFIX}{name}"] = value
    return values


def partial_ratio(needle: str, haystack: str) -> float:
    """Similarity of ``needle`` to its best-aligned window in ``haystack``.

    A haystack no longer than the needle is compared whole, so a short field
    value is not a perfect match just because the query contains it.
    """
    if not needle or not haystack:
        return 0.0
    if len(haystack) <= len(needle):
        return SequenceMatcher(None, needle, haystack, autojunk=False).ratio()

    window_matcher = SequenceMatcher(None, autojunk=False)
    window_matcher.set_seq2(needle)
    best = 0.0
    blocks = SequenceMatcher(None, needle, haystack, autojunk=False).get_matching_blocks()
    for block in blocks:
        start = max(block.b - block.a, 0)
        window_matcher.set_seq1(haystack[start:start + len(needle)])
        best = max(best, window_matcher.ratio())
        if best == 1.0:
            break
    return best


class FuzzyMatcher:
    """Approximate matcher over a fixed task list and key configuration.

    Each key is scored independently in ``[0, 1]``; a key matches when its
    score does not exceed ``threshold``. A task's score is the best weighted
    score (``score ** weight``) over its matching keys, so heavier keys pull
    imperfect matches closer to zero. Results sort by score, then input order.
    """

    def __init__(
        self,
        tasks: Sequence[Task],
        keys: Sequence[SearchKey],
        threshold: float = DEFAULT_SEARCH_THRESHOLD,
        limit: Optional[int] = None,
        values: Callable[[Task], Dict[str, str]] = searchable_values,
    ):
        self.tasks = list(tasks)
        self.keys = list(keys)
        self.threshold = threshold
        self.limit = limit
        self._documents = [values(task) for task in self.tasks]

    def _key_score(self, query: str, query_chars: Counter, text: str) -> float:
        text = text.lower()
        if query in text:
            return 0.0
        # any window holds at most `shared` matches, so its ratio is at most 2s/(n+s)
        shared = sum((query_chars & Counter(text)).values())
        if 1.0 - 2.0 * shared / (len(query) + shared) > self.threshold:
            return 1.0
        return 1.0 - partial_ratio(query, text)

    def search(self, query: str) -> List[SearchResult]:
        needle = query.strip().lower()
        if not needle:
            return []
        needle_chars = Counter(needle)

        results = []
        for index, document in enumerate(self._documents):
            best: Optional[float] = None
            matched = []
            for key in self.keys:
                text = document.get(key.name)
                if not text:
                    continue
                score = self._key_score(needle, needle_chars, text)
                if score > self.threshold:
                    continue
                matched.append(key.name)
                weighted = score ** key.weight
                if best is None or weighted < best:
                    best = weighted
            if best is not None:
                results.append(SearchResult(self.tasks[index], best, index, matched))

        results.sort(key=lambda result: (result.score, result.ref_index))
        if self.limit is not None:
            results = results[: self.limit]
        return results


def search_tasks(
    tasks: Sequence[Task],
    query: str,
    threshold: float = DEFAULT_SEARCH_THRESHOLD,
    limit: Optional[int] = None,
) -> List[SearchResult]:
    """Fuzzy search ``tasks`` across core text and every custom field."""
    matcher = FuzzyMatcher(tasks, generate_search_keys(tasks), threshold=threshold, limit=limit)
    results = matcher.search(query)
    logger.debug("Search %r matched %d of %d tasks", query, len(results), len(tasks))
    return results


def _numeric_id(task: Task) -> float:
    # ids may be stored as "5" in older files; non-numeric ids sort last
    try:
        return float(task.id)
    except (TypeError, ValueError):
        return float("-inf")


@dataclass(slots=True)
class RelevanceResults:
    """Tasks relevant to a prompt, with the buckets they came from."""

    results: List[Task]
    high_relevance: List[SearchResult]
    medium_relevance: List[SearchResult]
    low_relevance: List[SearchResult]
    category_tasks: List[Task]
    recent_tasks: List[Task]
    prompt_category: Optional[str]
    prompt_words: List[str]
    total_searched: int
    fuzzy_matches: int
    word_matches: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [task.to_dict() for task in self.results],
            "breakdown": {
                "highRelevance": [r.to_dict() for r in self.high_relevance],
                "mediumRelevance": [r.to_dict() for r in self.medium_relevance],
                "lowRelevance": [r.to_dict() for r in self.low_relevance],
                "categoryTasks": [task.id for task in self.category_tasks],
                "recentTasks": [task.id for task in self.recent_tasks],
                "promptCategory": self.prompt_category,
                "promptWords": list(self.prompt_words),
            },
            "metadata": {
                "totalSearched": self.total_searched,
                "fuzzyMatches": self.fuzzy_matches,
                "wordMatches": self.word_matches,
                "finalCount": len(self.results),
            },
        }


class FuzzyTaskSearch:
    """Find tasks relevant to a free-text prompt."""

    def __init__(self, tasks: Sequence[Task], search_type: str = "default"):
        self.tasks = list(tasks)
        self.config = SEARCH_CONFIGS.get(search_type, SEARCH_CONFIGS["default"])
        dependency_titles = self._dependency_titles(self.tasks)
        self.matcher = FuzzyMatcher(
            self.tasks,
            generate_search_keys(self.tasks, include_dependency_titles=True),
            threshold=self.config.threshold,
            limit=self.config.limit,
            values=lambda task: searchable_values(task, dependency_titles.get(task.id, "")),
        )

    @staticmethod
    def _dependency_titles(tasks: Sequence[Task]) -> Dict[Any, str]:
        titles = {task.id: task.title for task in tasks}
        return {
            task.id: " ".join(titles[dep] for dep in task.dependencies if titles.get(dep))
            for task in tasks
        }

    @staticmethod
    def _extract_prompt_words(prompt: str) -> List[str]:
        cleaned = re.sub(r"[^\w\s-]", " ", prompt.lower())
        return [word for word in cleaned.split() if len(word) > 3]

    def find_relevant_tasks(
        self,
        prompt: str,
        max_results: int = 8,
        include_recent: bool = True,
        include_category_matches: bool = True,
    ) -> RelevanceResults:
        """Search with the whole prompt and its longer words, then bucket by score."""
        prompt_words = self._extract_prompt_words(prompt)
        fuzzy_results = self.matcher.search(prompt)

        word_results: List[SearchResult] = []
        for word in prompt_words:
            if len(word) > 5:
                word_results.extend(self.matcher.search(word))

        merged = list(fuzzy_results)
        seen = {result.item.id for result in merged}
        for result in word_results:
            if result.item.id not in seen:
                seen.add(result.item.id)
                merged.append(result)

        high = [r for r in merged if r.score < RELEVANCE_THRESHOLDS["high"]]
        medium = [
            r for r in merged
            if RELEVANCE_THRESHOLDS["high"] <= r.score < RELEVANCE_THRESHOLDS["medium"]
        ]
        low = [
            r for r in merged
            if RELEVANCE_THRESHOLDS["medium"] <= r.score < RELEVANCE_THRESHOLDS["low"]
        ]

        recent: List[Task] = []
        if include_recent:
            recent = sorted(self.tasks, key=_numeric_id, reverse=True)[:5]

        category_tasks: List[Task] = []
        category_label = None
        if include_category_matches:
            for pattern, label in PURPOSE_CATEGORIES:
                if pattern.search(prompt):
                    category_label = label
                    category_tasks = [
                        task for task in self.tasks
                        if pattern.search(task.title)
                        or pattern.search(task.description)
                        or (task.details and pattern.search(task.details))
                    ][:3]
                    break

        combined: List[Task] = []
        combined_ids = set()
        candidates = (
            [r.item for r in high]
            + [r.item for r in medium]
            + [r.item for r in low]
            + category_tasks
            + recent
        )
        for task in candidates:
            if task.id not in combined_ids:
                combined_ids.add(task.id)
                combined.append(task)

        return RelevanceResults(
            results=combined[:max_results],
            high_relevance=high,
            medium_relevance=medium,
            low_relevance=low,
            category_tasks=category_tasks,
            recent_tasks=recent,
            prompt_category=category_label,
            prompt_words=prompt_words,
            total_searched=len(self.tasks),
            fuzzy_matches=len(fuzzy_results),
            word_matches=len(word_results),
        )

    @staticmethod
    def get_task_ids(search_results: RelevanceResults) -> List[str]:
        return [str(task.id) for task in search_results.results]

    @staticmethod
    def get_task_ids_with_subtasks(
        search_results: RelevanceResults, include_subtasks: bool = False
    ) -> List[str]:
        task_ids = []
        for task in search_results.results:
            task_ids.append(str(task.id))
            if include_subtasks:
                task_ids.extend(f"{task.id}.{subtask.id}" for subtask in task.subtasks)
        return task_ids

    @staticmethod
    def format_search_summary(
        search_results: RelevanceResults, include_breakdown: bool = False
    ) -> str:
        summary = (
            f"Found {len(search_results.results)} relevant tasks "
            f"from {search_results.total_searched} total tasks"
        )
        if not include_breakdown:
            return summary

        parts = []
        for count, label in (
            (len(search_results.high_relevance), "high relevance"),
            (len(search_results.medium_relevance), "medium relevance"),
            (len(search_results.low_relevance), "low relevance"),
            (len(search_results.category_tasks), "category matches"),
        ):
            if count:
                parts.append(f"{count} {label}")
        if parts:
            summary += f" ({', '.join(parts)})"
        if search_results.prompt_category:
            summary += f"\nCategory detected: {search_results.prompt_category}"
        return summary


def find_relevant_task_ids(
    tasks: Sequence[Task],
    prompt: str,
    search_type: str = "default",
    max_results: int = 8,
    include_subtasks: bool = False,
) -> List[str]:
    """Ids (and optionally dotted subtask ids) of the tasks relevant to ``prompt``."""
    search = FuzzyTaskSearch(tasks, search_type)
    results = search.find_relevant_tasks(prompt, max_results=max_results)
    if include_subtasks:
        return search.get_task_ids_with_subtasks(results, include_subtasks=True)
    return search.get_task_ids(results)
