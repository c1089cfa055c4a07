"""
Dependency resolution for batches of issues.

Builds an immutable graph over a batch, detects cycles with Tarjan's
strongly connected components algorithm, orders the graph into parallel
phases with Kahn's algorithm and derives the critical path.
"""

from __future__ import annotations

from collections import deque
from typing import Iterable, Sequence

import structlog

from .exceptions import CyclicGraphError, DanglingReferenceError, DuplicateIssueError
from .models import (
    BlockedIssue,
    DependencyGraph,
    ExecutionOrder,
    ExecutionValidation,
    Issue,
    IssueStatus,
    MalformedSubtaskReference,
    ParallelExecutionSet,
    ReadyIssues,
)

logger = structlog.get_logger()


class DependencyResolver:
    """
    Resolves execution order for issues with ``depends_on`` edges.

    The resolver holds no state; graphs are immutable and may be shared.

    Example:
        >>> resolver = DependencyResolver()
        >>> graph = resolver.build_dependency_graph([
        ...     Issue(id="a", title="Schema"),
        ...     Issue(id="b", title="API", depends_on=("a",)),
        ... ])
        >>> resolver.topological_sort(graph).parallel
        [['a'], ['b']]
    """

    def build_dependency_graph(
        self,
        issues: Iterable[Issue],
        *,
        strict: bool = False,
    ) -> DependencyGraph:
        """
        Build a dependency graph with one node per issue.

        Dependencies on ids outside the batch are dropped and reported as
        diagnostics, since they are assumed to be satisfied already.

        Args:
            issues: Issues in input order
            strict: Raise on dangling references instead of dropping them

        Returns:
            Immutable DependencyGraph

        Raises:
            DuplicateIssueError: If two issues share an id
            DanglingReferenceError: In strict mode, for an unknown dependency id
        """
        issues = tuple(issues)
        positions: dict[str, int] = {}
        for index, issue in enumerate(issues):
            if issue.id in positions:
                raise DuplicateIssueError(issue.id)
            positions[issue.id] = index

        dependency_indices: list[tuple[int, ...]] = []
        dependent_indices: list[list[int]] = [[] for _ in issues]
        diagnostics: list[MalformedSubtaskReference] = []

        for index, issue in enumerate(issues):
            edges: list[int] = []
            for dep_id in issue.depends_on:
                target = positions.get(dep_id)
                if target is None:
                    if strict:
                        raise DanglingReferenceError(issue.id, dep_id)
                    reference = MalformedSubtaskReference(issue_id=issue.id, missing_id=dep_id)
                    if reference not in diagnostics:
                        diagnostics.append(reference)
                        logger.warning(
                            "malformed_subtask_reference",
                            issue_id=issue.id,
                            missing_id=dep_id,
                        )
                    continue
                if target not in edges:
                    edges.append(target)
                    dependent_indices[target].append(index)
            dependency_indices.append(tuple(edges))

        graph = DependencyGraph(
            issues=issues,
            dependency_indices=tuple(dependency_indices),
            dependent_indices=tuple(tuple(d) for d in dependent_indices),
            diagnostics=tuple(diagnostics),
        )
        logger.debug(
            "graph_built",
            nodes=len(graph),
            edges=graph.edge_count,
            diagnostics=len(diagnostics),
        )
        return graph

    def detect_cycles(self, graph: DependencyGraph) -> list[list[str]]:
        """
        Find every dependency cycle in the graph.

        Each strongly connected component with more than one node, and each
        self-dependent node, yields one representative cycle. The cycle starts
        at the component's earliest input node and follows dependency edges.

        Returns:
            Cycles as lists of issue ids, ordered by their first node's input position
        """
        cycles = []
        for component in self._strongly_connected_components(graph):
            start = min(component)
            if len(component) == 1 and start not in graph.dependency_indices[start]:
                continue
            cycle = self._walk_cycle(graph, start, set(component))
            cycles.append((start, [graph.issues[i].id for i in cycle]))

        cycles.sort(key=lambda item: item[0])
        if cycles:
            logger.warning("cycles_detected", count=len(cycles), first=cycles[0][1])
        return [cycle for _, cycle in cycles]

    def topological_sort(self, graph: DependencyGraph) -> ExecutionOrder:
        """
        Order the graph into phases of mutually independent issues.

        Phase 0 holds every issue without dependencies; each later phase holds
        the issues whose last dependency finished in the previous phase.
        Issues inside a phase keep input order.

        Raises:
            CyclicGraphError: If the graph contains a cycle
        """
        cycles = self.detect_cycles(graph)
        if cycles:
            raise CyclicGraphError(cycles[0])

        phases = self._phases(graph)
        order = ExecutionOrder(
            sequential=[graph.issues[i].id for phase in phases for i in phase],
            parallel=[[graph.issues[i].id for i in phase] for phase in phases],
            critical_path=[graph.issues[i].id for i in self._critical_path(graph, phases)],
        )
        logger.debug(
            "graph_sorted",
            phases=len(order.parallel),
            critical_path_length=len(order.critical_path),
        )
        return order

    def critical_path(self, graph: DependencyGraph) -> list[str]:
        """Longest dependency chain, from an initial issue to a terminal one."""
        return self.topological_sort(graph).critical_path

    def _phases(self, graph: DependencyGraph) -> list[list[int]]:
        in_degree = [len(deps) for deps in graph.dependency_indices]
        phase = [i for i, degree in enumerate(in_degree) if degree == 0]
        phases: list[list[int]] = []

        while phase:
            phases.append(phase)
            freed = []
            for index in phase:
                for dependent in graph.dependent_indices[index]:
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        freed.append(dependent)
            phase = sorted(freed)

        return phases

    def _critical_path(self, graph: DependencyGraph, phases: list[list[int]]) -> list[int]:
        if not graph.issues:
            return []

        depth = [0] * len(graph)
        for phase in phases:
            for index in phase:
                deps = graph.dependency_indices[index]
                depth[index] = 1 + max(depth[d] for d in deps) if deps else 0

        # Deepest first, then most urgent priority, then input order
        def rank(index: int) -> tuple[int, int, int]:
            return (-depth[index], graph.issues[index].priority, index)

        path = [min(range(len(graph)), key=rank)]
        while graph.dependency_indices[path[-1]]:
            path.append(min(graph.dependency_indices[path[-1]], key=rank))

        path.reverse()
        return path

    def _strongly_connected_components(self, graph: DependencyGraph) -> list[list[int]]:
        """Iterative Tarjan over dependency edges."""
        size = len(graph)
        indices = [-1] * size
        lowlink = [0] * size
        on_stack = [False] * size
        stack: list[int] = []
        components: list[list[int]] = []
        counter = 0

        for root in range(size):
            if indices[root] >= 0:
                continue
            indices[root] = lowlink[root] = counter
            counter += 1
            stack.append(root)
            on_stack[root] = True
            work = [(root, iter(graph.dependency_indices[root]))]

            while work:
                node, edges = work[-1]
                descended = False
                for target in edges:
                    if indices[target] < 0:
                        indices[target] = lowlink[target] = counter
                        counter += 1
                        stack.append(target)
                        on_stack[target] = True
                        work.append((target, iter(graph.dependency_indices[target])))
                        descended = True
                        break
                    if on_stack[target]:
                        lowlink[node] = min(lowlink[node], indices[target])
                if descended:
                    continue

                work.pop()
                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node])

                if lowlink[node] == indices[node]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack[member] = False
                        component.append(member)
                        if member == node:
                            break
                    components.append(component)

        return components

    def _walk_cycle(self, graph: DependencyGraph, start: int, members: set[int]) -> list[int]:
        """Shortest dependency walk from ``start`` back to itself inside one component."""
        parents: dict[int, int | None] = {start: None}
        queue = deque([start])

        while queue:
            node = queue.popleft()
            deps = sorted(graph.dependency_indices[node])
            if start in deps:
                path = [node]
                while parents[path[-1]] is not None:
                    path.append(parents[path[-1]])
                path.reverse()
                return path
            for target in deps:
                if target in members and target not in parents:
                    parents[target] = node
                    queue.append(target)

        # Unreachable for a strongly connected component
        return sorted(members)

    def get_ready_issues(self, issues: Sequence[Issue]) -> ReadyIssues:
        """
        Split a backlog by readiness.

        An open issue is ready when every ``depends_on`` and ``blocked_by``
        id is done or unknown to the backlog. Open issues with unfinished
        blockers, and issues explicitly marked blocked, are reported as blocked.
        """
        by_id = {issue.id: issue for issue in issues}
        result = ReadyIssues()

        for issue in issues:
            if issue.status is IssueStatus.DONE:
                continue
            if issue.status is IssueStatus.IN_PROGRESS:
                result.in_progress.append(issue)
                continue

            blockers = _unfinished_blockers(issue, by_id)
            if blockers or issue.status is IssueStatus.BLOCKED:
                result.blocked.append(BlockedIssue(issue=issue, blockers=blockers))
            else:
                result.ready.append(issue)

        return result

    def get_parallel_execution_set(self, issues: Sequence[Issue]) -> ParallelExecutionSet:
        """Split the ready issues into those that can start together and the rest."""
        ready = self.get_ready_issues(issues).ready

        if not ready:
            return ParallelExecutionSet(
                can_run_parallel=[],
                must_run_sequential=[],
                reasoning="No issues are ready for execution",
            )
        if len(ready) == 1:
            return ParallelExecutionSet(
                can_run_parallel=[],
                must_run_sequential=ready,
                reasoning="Only one issue is ready, no parallelization possible",
            )

        ready_ids = {issue.id for issue in ready}
        parallel = []
        sequential = []
        for issue in ready:
            if any(dep in ready_ids for dep in issue.depends_on):
                sequential.append(issue)
            else:
                parallel.append(issue)

        return ParallelExecutionSet(
            can_run_parallel=parallel,
            must_run_sequential=sequential,
            reasoning=(
                f"{len(parallel)} issues can run in parallel, "
                f"{len(sequential)} have inter-dependencies"
            ),
        )

    def validate_execution(self, issue_id: str, issues: Sequence[Issue]) -> ExecutionValidation:
        """Check whether an issue may be started now."""
        by_id = {issue.id: issue for issue in issues}
        issue = by_id.get(issue_id)
        if issue is None:
            return ExecutionValidation(can_execute=False, blockers=[f"Issue {issue_id} not found"])

        blockers = []
        warnings = []
        if issue.status is IssueStatus.IN_PROGRESS:
            warnings.append("Issue is already in progress")
        if issue.status is IssueStatus.DONE:
            blockers.append("Issue is already done")

        for dep_id in _blocker_ids(issue):
            dep = by_id.get(dep_id)
            if dep is None:
                warnings.append(f"Dependency {dep_id} not found; treated as satisfied")
            elif dep.status is not IssueStatus.DONE:
                blockers.append(f"Blocked by {dep_id}: {dep.title}")

        return ExecutionValidation(can_execute=not blockers, blockers=blockers, warnings=warnings)


def _blocker_ids(issue: Issue) -> list[str]:
    return list(dict.fromkeys((*issue.depends_on, *issue.blocked_by)))


def _unfinished_blockers(issue: Issue, by_id: dict[str, Issue]) -> list[str]:
    return [
        dep_id for dep_id in _blocker_ids(issue)
        if dep_id in by_id and by_id[dep_id].status is not IssueStatus.DONE
    ]
