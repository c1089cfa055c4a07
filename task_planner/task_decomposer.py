"""Task decomposition into ordered, internally dependent subtasks."""

from __future__ import annotations

import re
from dataclasses import dataclass

import structlog

from .classifier import TaskClassifier
from .exceptions import DecompositionError
from .models import (
    ComplexityLevel,
    DecompositionInput,
    DecompositionPreview,
    DecompositionResult,
    Subtask,
    TaskCategory,
    TaskType,
    TemplateSuggestion,
)

logger = structlog.get_logger()

# Categories the implementation stage keeps from the classifier
IMPLEMENTATION_CATEGORIES = frozenset({
    TaskCategory.COMPLEX_CODE,
    TaskCategory.QUICK_FIX,
    TaskCategory.GENERAL,
})

# Weights for the critical path over subtasks
COMPLEXITY_WEIGHT = {
    ComplexityLevel.LOW: 1,
    ComplexityLevel.MEDIUM: 2,
    ComplexityLevel.HIGH: 3,
}

# Effort points reported by preview()
COMPLEXITY_POINTS = {
    ComplexityLevel.LOW: 1,
    ComplexityLevel.MEDIUM: 3,
    ComplexityLevel.HIGH: 5,
}

MAX_PRIORITY = 3


@dataclass(frozen=True)
class Stage:
    """A template stage; ``after`` names the stages it depends on."""

    key: str
    title: str
    description: str
    category: TaskCategory | None = None  # None: resolved from the classifier
    complexity: ComplexityLevel | None = None  # None: resolved from the estimator
    after: tuple[str, ...] = ()
    type: TaskType = TaskType.TASK
    pinned_priority: int | None = None


@dataclass(frozen=True)
class DomainSignal:
    """Keyword signal that injects an extra stage after implementation."""

    name: str
    keywords: tuple[str, ...]
    stage: Stage

    def matches(self, text: str) -> list[str]:
        return [
            keyword for keyword in self.keywords
            if re.search(rf"\b{re.escape(keyword)}\w*", text, re.IGNORECASE)
        ]


DOMAIN_SIGNALS: tuple[DomainSignal, ...] = (
    DomainSignal(
        name="security",
        keywords=("auth", "oauth", "login", "security", "secure", "permission"),
        stage=Stage(
            key="security_review",
            title="Security review: {title}",
            description="Security audit of the {title} implementation",
            category=TaskCategory.REVIEW,
            complexity=ComplexityLevel.MEDIUM,
            pinned_priority=1,
        ),
    ),
    DomainSignal(
        name="payment",
        keywords=("payment", "billing", "checkout", "invoice"),
        stage=Stage(
            key="payment_tests",
            title="Payment flow tests: {title}",
            description="Test payment, refund and failure paths for {title}",
            category=TaskCategory.QUICK_FIX,
            complexity=ComplexityLevel.MEDIUM,
        ),
    ),
    DomainSignal(
        name="data_migration",
        keywords=("migration", "migrate", "schema", "database", "backfill"),
        stage=Stage(
            key="migration_rollback",
            title="Migration rollback rehearsal: {title}",
            description="Rehearse the data migration rollback for {title}",
            category=TaskCategory.COMPLEX_CODE,
            complexity=ComplexityLevel.MEDIUM,
        ),
    ),
    DomainSignal(
        name="public_api",
        keywords=("api", "endpoint", "graphql", "sdk", "webhook"),
        stage=Stage(
            key="api_contract_review",
            title="API contract review: {title}",
            description="Review the public API contract and compatibility of {title}",
            category=TaskCategory.REVIEW,
            complexity=ComplexityLevel.LOW,
        ),
    ),
)


@dataclass(frozen=True)
class Template:
    """Ordered stages for one task type."""

    name: str
    implementation: str  # key of the stage injected stages depend on
    default_category: TaskCategory
    stages: tuple[Stage, ...]
    sign_off: str | None = None  # key of the final stage that waits on injected stages


FEATURE_TEMPLATE = Template(
    name="feature",
    implementation="implement",
    default_category=TaskCategory.COMPLEX_CODE,
    sign_off="review",
    stages=(
        Stage(
            key="scope",
            title="Scope: {title}",
            description="Define requirements, acceptance criteria and approach for {title}",
            category=TaskCategory.RESEARCH,
            complexity=ComplexityLevel.LOW,
        ),
        Stage(
            key="implement",
            title="Implement: {title}",
            description="Core implementation of {title}",
            after=("scope",),
        ),
        Stage(
            key="tests",
            title="Tests: {title}",
            description="Write tests for {title}",
            category=TaskCategory.QUICK_FIX,
            complexity=ComplexityLevel.LOW,
            after=("implement",),
        ),
        Stage(
            key="documentation",
            title="Document: {title}",
            description="Write user and developer documentation for {title}",
            category=TaskCategory.RESEARCH,
            complexity=ComplexityLevel.LOW,
            after=("implement",),
        ),
        Stage(
            key="review",
            title="Review: {title}",
            description="Code review and sign-off for {title}",
            category=TaskCategory.REVIEW,
            complexity=ComplexityLevel.LOW,
            after=("tests", "documentation"),
        ),
    ),
)

BUG_TEMPLATE = Template(
    name="bug",
    implementation="fix",
    default_category=TaskCategory.QUICK_FIX,
    sign_off="verify",
    stages=(
        Stage(
            key="reproduce",
            title="Reproduce: {title}",
            description="Investigate and reproduce {title} with a failing case",
            category=TaskCategory.RESEARCH,
            complexity=ComplexityLevel.LOW,
        ),
        Stage(
            key="fix",
            title="Fix: {title}",
            description="Fix the root cause of {title}",
            type=TaskType.BUG,
            after=("reproduce",),
        ),
        Stage(
            key="verify",
            title="Verify: {title}",
            description="Verify the fix for {title} and check for regressions",
            category=TaskCategory.REVIEW,
            complexity=ComplexityLevel.LOW,
            after=("fix",),
        ),
    ),
)

# Coverage lands before the refactor so regressions surface during it
REFACTOR_TEMPLATE = Template(
    name="refactoring",
    implementation="refactor",
    default_category=TaskCategory.COMPLEX_CODE,
    sign_off="verify",
    stages=(
        Stage(
            key="analyze",
            title="Analyze: {title}",
            description="Document the current implementation of {title} and its problems",
            category=TaskCategory.RESEARCH,
            complexity=ComplexityLevel.LOW,
        ),
        Stage(
            key="design",
            title="Design: {title}",
            description="Write a step-by-step refactoring plan for {title}",
            category=TaskCategory.COMPLEX_CODE,
            complexity=ComplexityLevel.MEDIUM,
            after=("analyze",),
        ),
        Stage(
            key="tests",
            title="Tests: {title}",
            description="Add test coverage for {title} before changing it",
            category=TaskCategory.QUICK_FIX,
            complexity=ComplexityLevel.MEDIUM,
            after=("design",),
        ),
        Stage(
            key="refactor",
            title="Refactor: {title}",
            description="Carry out the refactoring plan for {title}",
            complexity=ComplexityLevel.HIGH,
            after=("tests",),
        ),
        Stage(
            key="verify",
            title="Verify: {title}",
            description="Run the test suite and confirm {title} behaves as before",
            category=TaskCategory.REVIEW,
            complexity=ComplexityLevel.LOW,
            after=("refactor",),
        ),
    ),
)

# Chores and plain tasks matching this use the refactoring template
REFACTOR_PATTERN = re.compile(r"\b(refactor|restructur|reorganiz|clean\s?up)\w*", re.IGNORECASE)

TEMPLATES_BY_TYPE = {
    TaskType.FEATURE: FEATURE_TEMPLATE,
    TaskType.BUG: BUG_TEMPLATE,
}


def parse_task_type(value: TaskType | str) -> TaskType:
    """Resolve a task type, raising DecompositionError for unsupported values."""
    if isinstance(value, TaskType):
        return value
    try:
        return TaskType(str(value).strip().lower())
    except ValueError:
        supported = ", ".join(t.value for t in TaskType)
        raise DecompositionError(
            f"Unsupported task type {value!r}; expected one of: {supported}",
            error_code="UNSUPPORTED_TASK_TYPE",
        ) from None


class TaskDecompositionService:
    """
    Breaks a high-level task into subtasks using fixed templates.

    Features follow scope -> implement -> (tests, documentation) -> review,
    bugs follow reproduce -> fix -> verify, and chores and plain tasks use an
    adaptive template sized by estimated complexity. Domain signals in the
    title or description inject extra stages that depend on the
    implementation stage and hold back the final sign-off.

    The service is stateless; ``preview`` and ``suggest_template`` never
    mutate anything.

    Example:
        >>> service = TaskDecompositionService()
        >>> result = service.decompose(DecompositionInput(title="Add dark mode"))
        >>> [s.title for s in result.subtasks][:2]
        ['Scope: Add dark mode', 'Implement: Add dark mode']
    """

    def __init__(self, classifier: TaskClassifier | None = None) -> None:
        self._classifier = classifier or TaskClassifier()

    @property
    def classifier(self) -> TaskClassifier:
        return self._classifier

    def decompose(self, task: DecompositionInput) -> DecompositionResult:
        """
        Decompose a task into ordered subtasks.

        Args:
            task: Title, description, type and optional base priority

        Returns:
            DecompositionResult with subtasks, index dependencies, parallel
            groups and the complexity-weighted critical path

        Raises:
            DecompositionError: If the title is empty or the type is unsupported
        """
        task_type = parse_task_type(task.type)
        if not task.title or not task.title.strip():
            raise DecompositionError("Task title must not be empty", error_code="EMPTY_TITLE")

        template = self._template_for(task_type, task)
        signals = self._match_signals(task)
        stages = self._arrange_stages(template, signals)
        subtasks = self._build_subtasks(template, stages, task)

        dependencies = [
            (index, dep) for index, subtask in enumerate(subtasks) for dep in subtask.depends_on
        ]
        parallel_groups = self._parallel_groups(subtasks)
        critical_path = self._critical_path(subtasks, parallel_groups)

        reasoning = f"Decomposed using the '{template.name}' template into {len(subtasks)} subtasks"
        if signals:
            reasoning += f" (signals: {', '.join(s.name for s in signals)})"

        logger.info(
            "task_decomposed",
            title=task.title,
            template=template.name,
            subtasks=len(subtasks),
            signals=[s.name for s in signals],
        )

        return DecompositionResult(
            subtasks=subtasks,
            reasoning=reasoning,
            template=template.name,
            signals=[s.name for s in signals],
            dependencies=dependencies,
            parallel_groups=parallel_groups,
            critical_path=critical_path,
        )

    def preview(self, task: DecompositionInput) -> DecompositionPreview:
        """Summarize the effort and parallelism of a decomposition."""
        decomposition = self.decompose(task)
        count = len(decomposition.subtasks)
        points = sum(COMPLEXITY_POINTS[s.estimated_complexity] for s in decomposition.subtasks)
        phases = len(decomposition.parallel_groups)

        if phases == count:
            shape = "sequential"
        elif phases <= count / 2:
            shape = "highly parallel"
        else:
            shape = "partially parallel"

        return DecompositionPreview(
            decomposition=decomposition,
            estimated_effort=f"{count} subtasks, ~{points} complexity points",
            parallelization=f"{phases} phases for {count} subtasks ({shape})",
        )

    def suggest_template(self, task: DecompositionInput) -> TemplateSuggestion:
        """Report which template and signals ``decompose`` would use."""
        task_type = parse_task_type(task.type)
        template = self._template_for(task_type, task)
        signals = self._match_signals(task)

        confidence = 0.5 + 0.1 * len(signals)
        if template.name != "generic":
            confidence += 0.3

        reasoning = f"Type '{task_type.value}' uses the '{template.name}' template"
        if signals:
            reasoning += f"; matched signals: {', '.join(s.name for s in signals)}"

        return TemplateSuggestion(
            template=template.name,
            confidence=round(min(confidence, 1.0), 2),
            signals=tuple(s.name for s in signals),
            reasoning=reasoning,
        )

    def _template_for(self, task_type: TaskType, task: DecompositionInput) -> Template:
        template = TEMPLATES_BY_TYPE.get(task_type)
        if template is not None:
            return template
        if REFACTOR_PATTERN.search(f"{task.title} {task.description or ''}"):
            return REFACTOR_TEMPLATE
        return self._generic_template(task)

    def _generic_template(self, task: DecompositionInput) -> Template:
        """Research and implement, plus tests unless simple and review when complex."""
        level = self._classifier.estimate_complexity(task.title, task.description).level
        stages = [
            Stage(
                key="research",
                title="Research: {title}",
                description="Research requirements and approach for {title}",
                category=TaskCategory.RESEARCH,
                complexity=ComplexityLevel.LOW,
            ),
            Stage(
                key="implement",
                title="Implement: {title}",
                description="Core implementation of {title}",
                after=("research",),
            ),
        ]
        if level is not ComplexityLevel.LOW:
            stages.append(Stage(
                key="tests",
                title="Tests: {title}",
                description="Write tests for {title}",
                category=TaskCategory.QUICK_FIX,
                complexity=ComplexityLevel.LOW,
                after=("implement",),
            ))
        if level is ComplexityLevel.HIGH:
            stages.append(Stage(
                key="review",
                title="Review: {title}",
                description="Code review for {title}",
                category=TaskCategory.REVIEW,
                complexity=ComplexityLevel.LOW,
                after=(stages[-1].key,),
            ))

        return Template(
            name="generic",
            implementation="implement",
            default_category=TaskCategory.COMPLEX_CODE,
            stages=tuple(stages),
            sign_off="review" if level is ComplexityLevel.HIGH else None,
        )

    def _match_signals(self, task: DecompositionInput) -> list[DomainSignal]:
        text = f"{task.title} {task.description or ''}"
        return [signal for signal in DOMAIN_SIGNALS if signal.matches(text)]

    def _arrange_stages(self, template: Template, signals: list[DomainSignal]) -> list[Stage]:
        """Template stages with injected stages placed ahead of the sign-off."""
        injected = [
            Stage(
                key=signal.stage.key,
                title=signal.stage.title,
                description=signal.stage.description,
                category=signal.stage.category,
                complexity=signal.stage.complexity,
                after=(template.implementation,),
                pinned_priority=signal.stage.pinned_priority,
            )
            for signal in signals
        ]
        if template.sign_off is None:
            return [*template.stages, *injected]

        stages = []
        for stage in template.stages:
            if stage.key == template.sign_off:
                stages.extend(injected)
                stage = Stage(
                    key=stage.key,
                    title=stage.title,
                    description=stage.description,
                    category=stage.category,
                    complexity=stage.complexity,
                    after=(*stage.after, *(s.key for s in injected)),
                    type=stage.type,
                    pinned_priority=stage.pinned_priority,
                )
            stages.append(stage)
        return stages

    def _build_subtasks(
        self,
        template: Template,
        stages: list[Stage],
        task: DecompositionInput,
    ) -> list[Subtask]:
        positions = {stage.key: index for index, stage in enumerate(stages)}
        classification = self._classifier.classify(task.title, task.description)
        complexity = self._classifier.estimate_complexity(task.title, task.description)
        implementation_category = (
            classification.category
            if classification.category in IMPLEMENTATION_CATEGORIES
            else template.default_category
        )
        base_priority = task.priority if task.priority is not None else 1

        depths: dict[str, int] = {}
        for stage in stages:
            depths[stage.key] = 1 + max(depths[k] for k in stage.after) if stage.after else 0

        subtasks = []
        for stage in stages:
            if stage.pinned_priority is not None:
                priority = stage.pinned_priority
            else:
                priority = max(1, min(MAX_PRIORITY, base_priority + depths[stage.key]))
            subtasks.append(Subtask(
                title=stage.title.format(title=task.title),
                description=stage.description.format(title=task.title),
                type=stage.type,
                priority=priority,
                depends_on=tuple(positions[k] for k in stage.after),
                category=stage.category or implementation_category,
                estimated_complexity=stage.complexity or complexity.level,
            ))
        return subtasks

    def _parallel_groups(self, subtasks: list[Subtask]) -> list[list[int]]:
        """Batches of subtask indices whose dependencies finished in earlier batches."""
        remaining = set(range(len(subtasks)))
        completed: set[int] = set()
        groups: list[list[int]] = []

        while remaining:
            group = sorted(
                index for index in remaining
                if all(dep in completed for dep in subtasks[index].depends_on)
            )
            if not group:
                raise DecompositionError(
                    "Circular dependency between subtasks",
                    error_code="CIRCULAR_DEPENDENCY",
                )
            groups.append(group)
            completed.update(group)
            remaining -= set(group)

        return groups

    def _critical_path(self, subtasks: list[Subtask], groups: list[list[int]]) -> list[int]:
        """Heaviest chain by complexity weight; ties go to the earliest index."""
        weights: dict[int, int] = {}
        predecessors: dict[int, int] = {}

        for index in (i for group in groups for i in group):
            subtask = subtasks[index]
            best_dep = min(subtask.depends_on, key=lambda d: (-weights[d], d), default=None)
            base = weights[best_dep] if best_dep is not None else 0
            weights[index] = base + COMPLEXITY_WEIGHT[subtask.estimated_complexity]
            if best_dep is not None:
                predecessors[index] = best_dep

        if not weights:
            return []

        end = min(weights, key=lambda i: (-weights[i], i))
        path = [end]
        while path[-1] in predecessors:
            path.append(predecessors[path[-1]])
        path.reverse()
        return path
