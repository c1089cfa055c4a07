"""Keyword and complexity heuristics for classifying tasks."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .models import ClassificationResult, ComplexityEstimate, ComplexityLevel, TaskCategory

if TYPE_CHECKING:
    from .config_loader import ClassifierConfig


# Keywords match at a word start, so "integrat" covers integrate/integration
CATEGORY_KEYWORDS: dict[TaskCategory, tuple[str, ...]] = {
    TaskCategory.RESEARCH: (
        "research", "investigat", "explor", "analy", "compar", "evaluat",
        "study", "understand", "discover", "identif", "benchmark", "spike",
        "document", "docs",
    ),
    TaskCategory.COMPLEX_CODE: (
        "implement", "build", "create", "develop", "architect", "design",
        "integrat", "feature", "system", "service", "module", "auth", "oauth",
        "secur", "payment", "migrat", "database", "refactor", "api",
        "endpoint", "concurren",
    ),
    TaskCategory.QUICK_FIX: (
        "fix", "bug", "patch", "hotfix", "typo", "rename", "config", "broken",
        "error", "tweak", "bump", "test", "coverage", "lint",
    ),
    TaskCategory.REVIEW: (
        "review", "audit", "verif", "validat", "inspect", "assess", "check",
        "approv",
    ),
    TaskCategory.GENERAL: (
        "update", "modify", "adjust", "remove", "setup", "install", "deploy",
        "cleanup", "upgrade",
    ),
}

# Deterministic order used when scores and title positions tie
CATEGORY_ORDER: tuple[TaskCategory, ...] = (
    TaskCategory.COMPLEX_CODE,
    TaskCategory.REVIEW,
    TaskCategory.RESEARCH,
    TaskCategory.QUICK_FIX,
    TaskCategory.GENERAL,
)

_KEYWORD_PATTERNS: dict[str, re.Pattern[str]] = {
    keyword: re.compile(rf"\b{re.escape(keyword)}\w*", re.IGNORECASE)
    for keywords in CATEGORY_KEYWORDS.values()
    for keyword in keywords
}

_CLAUSE_SPLIT = re.compile(r"[.;:\n]+|,\s+")

_COMPLEXITY_INDICATORS: tuple[tuple[re.Pattern[str], str, float], ...] = (
    (re.compile(r"multiple|several|many", re.I), "multiple items", 0.5),
    (re.compile(r"refactor|redesign|rewrite", re.I), "major changes", 1.0),
    (re.compile(r"integrate|integration", re.I), "integration work", 0.7),
    (re.compile(r"security|auth", re.I), "security considerations", 0.8),
    (re.compile(r"performance|optimi[sz]e", re.I), "performance work", 0.6),
    (re.compile(r"database|migration", re.I), "database changes", 0.7),
    (re.compile(r"\bapi\b|endpoint", re.I), "API work", 0.4),
    (re.compile(r"\btest|testing", re.I), "testing required", 0.3),
)

_SIMPLE_INDICATORS: tuple[tuple[re.Pattern[str], str, float], ...] = (
    (re.compile(r"fix typo|update comment|rename", re.I), "simple change", -0.5),
    (re.compile(r"\b(single|one|simple)\b", re.I), "limited scope", -0.3),
)


@dataclass
class _CategoryTally:
    score: float = 0.0
    first_title_hit: int | None = None
    hits: list[tuple[float, int, str]] = field(default_factory=list)  # (weight, position, word)

    def add(self, weight: float, position: int, word: str) -> None:
        self.score += weight
        self.hits.append((weight, position, word))


class TaskClassifier:
    """
    Maps a task's title and description to a category and a confidence.

    Every keyword scores once per field: ``title_weight`` when it appears in
    the title and ``description_weight`` when it appears in the description.
    Long, multi-clause descriptions add a bias toward ``complex_code``.
    ``general`` is returned when no category reaches ``min_score``.

    Example:
        >>> classifier = TaskClassifier()
        >>> classifier.classify("Research caching options", "Compare redis and memcached").category
        <TaskCategory.RESEARCH: 'research'>
    """

    DEFAULT_CONFIDENCE = 0.5

    def __init__(
        self,
        title_weight: float = 2.0,
        description_weight: float = 1.0,
        min_score: float = 1.0,
        long_description_words: int = 40,
        long_description_bonus: float = 1.0,
        multi_clause_threshold: int = 3,
        multi_clause_bonus: float = 0.5,
    ) -> None:
        self.title_weight = title_weight
        self.description_weight = description_weight
        self.min_score = min_score
        self.long_description_words = long_description_words
        self.long_description_bonus = long_description_bonus
        self.multi_clause_threshold = multi_clause_threshold
        self.multi_clause_bonus = multi_clause_bonus

    @classmethod
    def from_config(cls, config: ClassifierConfig) -> TaskClassifier:
        return cls(
            title_weight=config.title_weight,
            description_weight=config.description_weight,
            min_score=config.min_score,
            long_description_words=config.long_description_words,
            long_description_bonus=config.long_description_bonus,
            multi_clause_threshold=config.multi_clause_threshold,
            multi_clause_bonus=config.multi_clause_bonus,
        )

    def classify(self, title: str, description: str | None = None) -> ClassificationResult:
        """
        Classify a task.

        Args:
            title: Task title
            description: Optional longer description

        Returns:
            ClassificationResult with category, confidence and matched keywords
        """
        title = title or ""
        description = description or ""
        tallies = {category: _CategoryTally() for category in CATEGORY_ORDER}

        for category, keywords in CATEGORY_KEYWORDS.items():
            tally = tallies[category]
            for keyword in keywords:
                pattern = _KEYWORD_PATTERNS[keyword]
                title_match = pattern.search(title)
                if title_match:
                    tally.add(self.title_weight, title_match.start(), title_match.group(0).lower())
                    if tally.first_title_hit is None or title_match.start() < tally.first_title_hit:
                        tally.first_title_hit = title_match.start()
                description_match = pattern.search(description)
                if description_match:
                    # Description positions sort after every title position
                    position = len(title) + 1 + description_match.start()
                    tally.add(self.description_weight, position, description_match.group(0).lower())

        complex_tally = tallies[TaskCategory.COMPLEX_CODE]
        bias_notes = []
        if len(description.split()) >= self.long_description_words:
            complex_tally.score += self.long_description_bonus
            bias_notes.append("long description")
        clauses = [c for c in _CLAUSE_SPLIT.split(description) if c.strip()]
        if len(clauses) >= self.multi_clause_threshold:
            complex_tally.score += self.multi_clause_bonus
            bias_notes.append(f"{len(clauses)} clauses")

        scores = {category: round(tally.score, 4) for category, tally in tallies.items()}
        total = sum(scores.values())

        ranked = sorted(
            CATEGORY_ORDER,
            key=lambda c: (
                -scores[c],
                tallies[c].first_title_hit if tallies[c].first_title_hit is not None else float("inf"),
                CATEGORY_ORDER.index(c),
            ),
        )
        winner = ranked[0]

        if scores[winner] < self.min_score:
            return ClassificationResult(
                category=TaskCategory.GENERAL,
                confidence=self.DEFAULT_CONFIDENCE,
                keywords=(),
                scores=scores,
                reasoning="Task classified as 'general': no category keywords matched",
            )

        keywords = _dominant_keywords(tallies[winner])
        confidence = min(scores[winner] / total, 1.0) if total > 0 else self.DEFAULT_CONFIDENCE

        reasoning = f"Task classified as '{winner.value}'"
        if keywords:
            reasoning += f" based on keywords: {', '.join(keywords[:5])}"
        if bias_notes and winner is TaskCategory.COMPLEX_CODE:
            reasoning += f" ({', '.join(bias_notes)})"

        return ClassificationResult(
            category=winner,
            confidence=round(confidence, 4),
            keywords=tuple(keywords),
            scores=scores,
            reasoning=reasoning,
        )

    def estimate_complexity(self, title: str, description: str | None = None) -> ComplexityEstimate:
        """Estimate task complexity for prioritization and effort summaries."""
        text = f"{title} {description or ''}"
        factors: list[str] = []
        score = 1.0

        for pattern, factor, weight in _COMPLEXITY_INDICATORS + _SIMPLE_INDICATORS:
            if pattern.search(text):
                score += weight
                factors.append(factor)

        if score <= 1.5:
            level = ComplexityLevel.LOW
        elif score <= 3:
            level = ComplexityLevel.MEDIUM
        else:
            level = ComplexityLevel.HIGH

        return ComplexityEstimate(
            level=level,
            score=round(max(0.0, min(5.0, score)), 2),
            factors=tuple(factors),
        )


def _dominant_keywords(tally: _CategoryTally) -> list[str]:
    """Matched words, heaviest first, then by position; duplicates removed."""
    seen: set[str] = set()
    ordered = []
    for _, _, word in sorted(tally.hits, key=lambda hit: (-hit[0], hit[1])):
        if word not in seen:
            seen.add(word)
            ordered.append(word)
    return ordered


_default_classifier = TaskClassifier()


def classify_task(title: str, description: str | None = None) -> ClassificationResult:
    """Classify a task with the default heuristics."""
    return _default_classifier.classify(title, description)


def estimate_complexity(title: str, description: str | None = None) -> ComplexityEstimate:
    """Estimate task complexity with the default heuristics."""
    return _default_classifier.estimate_complexity(title, description)
