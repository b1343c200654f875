"""
Readiness resolver
Decides which frontier nodes can be worked on now, and explains the ones that never can
"""

import logging
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Iterable

import Levenshtein
import networkx as nx

from backend.models import FrontierNode

logger = logging.getLogger(__name__)

SUGGESTION_MAX_DISTANCE = 2


@dataclass
class OrphanedPrerequisite:
    node_id: str
    prerequisite: str
    suggestion: Optional[str] = None

    def describe(self) -> str:
        text = f"'{self.node_id}' requires unknown '{self.prerequisite}'"
        if self.suggestion:
            text += f" (did you mean '{self.suggestion}'?)"
        return text


@dataclass
class GraphDiagnostics:
    orphans: List[OrphanedPrerequisite] = field(default_factory=list)
    cycles: List[List[str]] = field(default_factory=list)
    blocked: List[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not (self.orphans or self.cycles)

    def describe(self) -> List[str]:
        lines = [orphan.describe() for orphan in self.orphans]
        lines += [f"Prerequisite cycle: {' -> '.join(cycle + cycle[:1])}" for cycle in self.cycles]
        if self.blocked:
            lines.append(f"Permanently blocked: {', '.join(self.blocked)}")
        return lines


def _completed_sets(nodes: Iterable[FrontierNode]):
    completed = [n for n in nodes if n.completed]
    return {n.id for n in completed}, {n.title for n in completed}


def is_prerequisite_met(prerequisite: str, completed_ids: set, completed_titles: set,
                        legacy_title_prerequisites: bool = False) -> bool:
    if prerequisite in completed_ids:
        return True
    return legacy_title_prerequisites and prerequisite in completed_titles


def get_ready_nodes(nodes: List[FrontierNode], legacy_title_prerequisites: bool = False,
                    report_orphans: bool = True) -> List[FrontierNode]:
    """
    Nodes that are not completed and whose prerequisites are all completed.

    Prerequisites resolve by node id. Matching a completed node's title is
    only honoured for projects that opted into legacy_title_prerequisites.
    Order of the input list is preserved. Orphaned prerequisites are logged
    unless report_orphans is False, for callers that diagnose the graph themselves.
    """
    completed_ids, completed_titles = _completed_sets(nodes)

    if report_orphans:
        _log_orphans("get_ready_nodes", find_orphaned_prerequisites(nodes, legacy_title_prerequisites))

    return [
        node for node in nodes
        if not node.completed and all(
            is_prerequisite_met(p, completed_ids, completed_titles, legacy_title_prerequisites)
            for p in node.prerequisites
        )
    ]


def _log_orphans(caller: str, orphans: List[OrphanedPrerequisite]):
    for orphan in orphans:
        logger.warning(f"[{caller}] Orphaned prerequisite: {orphan.describe()}")


def find_orphaned_prerequisites(nodes: List[FrontierNode],
                                legacy_title_prerequisites: bool = False) -> List[OrphanedPrerequisite]:
    """Prerequisite references that match no node at all"""
    node_ids = [n.id for n in nodes]
    known = set(node_ids)
    if legacy_title_prerequisites:
        known |= {n.title for n in nodes}

    orphans = []
    for node in nodes:
        if node.completed:
            continue
        for prerequisite in node.prerequisites:
            if prerequisite not in known:
                orphans.append(OrphanedPrerequisite(
                    node_id=node.id,
                    prerequisite=prerequisite,
                    suggestion=_closest_id(prerequisite, node_ids),
                ))
    return orphans


def _closest_id(reference: str, node_ids: List[str]) -> Optional[str]:
    best, best_distance = None, SUGGESTION_MAX_DISTANCE + 1
    for node_id in node_ids:
        distance = Levenshtein.distance(reference, node_id)
        if distance < best_distance:
            best, best_distance = node_id, distance
    return best


def build_dependency_graph(nodes: List[FrontierNode], legacy_title_prerequisites: bool = False) -> nx.DiGraph:
    """
    Directed graph with an edge prerequisite -> node.

    Unknown prerequisites become placeholder vertices flagged orphan=True.
    """
    title_to_id: Dict[str, str] = {}
    if legacy_title_prerequisites:
        for node in nodes:
            title_to_id.setdefault(node.title, node.id)

    g = nx.DiGraph()
    for node in nodes:
        g.add_node(node.id, node=node, orphan=False)

    for node in nodes:
        for prerequisite in node.prerequisites:
            source = prerequisite
            if source not in g and source in title_to_id:
                source = title_to_id[source]
            if source not in g:
                g.add_node(source, node=None, orphan=True)
            g.add_edge(source, node.id)
    return g


def diagnose_graph(nodes: List[FrontierNode], legacy_title_prerequisites: bool = False) -> GraphDiagnostics:
    """Orphaned references, prerequisite cycles and the open nodes stuck behind them"""
    g = build_dependency_graph(nodes, legacy_title_prerequisites)
    diagnostics = GraphDiagnostics(
        orphans=find_orphaned_prerequisites(nodes, legacy_title_prerequisites),
        cycles=[sorted(cycle) for cycle in nx.simple_cycles(g)],
    )
    _log_orphans("diagnose_graph", diagnostics.orphans)

    roots = {v for v, data in g.nodes(data=True) if data.get("orphan")}
    for cycle in diagnostics.cycles:
        roots.update(cycle)

    blocked = set()
    for root in roots:
        blocked.update(nx.descendants(g, root))
        if not g.nodes[root].get("orphan"):
            blocked.add(root)

    diagnostics.blocked = [
        n.id for n in nodes if n.id in blocked and not n.completed
    ]
    return diagnostics
