"""
Graph visualization component for Forest
Creates Graphviz diagrams of a path's task graph
"""

import graphviz
from typing import List

from backend.models import TaskGraph
from backend.readiness import build_dependency_graph, get_ready_nodes

COMPLETED_COLOR = '#26c176'
READY_COLOR = '#ffffff'
BLOCKED_COLOR = '#d9d9d9'
ORPHAN_COLOR = '#c0392b'


def node_state(node, ready_ids: set) -> str:
    if node.completed:
        return 'completed'
    if node.id in ready_ids:
        return 'ready'
    return 'blocked'


def create_task_graph(graph: TaskGraph, legacy_title_prerequisites: bool = False) -> graphviz.Digraph:
    """
    Create a Graphviz diagram for the task graph

    Nodes are grouped by branch. Completed nodes are green, ready nodes white,
    blocked nodes grey; prerequisites that match no node are drawn as dashed
    placeholders.
    """
    dot = graphviz.Digraph(
        comment=f'Task Graph - {graph.path_name}',
        engine='dot'
    )

    dot.attr(rankdir='LR')
    dot.attr('graph',
             ranksep='1.2',
             nodesep='0.4',
             fontname='Arial',
             fontsize='12',
             bgcolor='transparent'
    )
    dot.attr('node',
             shape='box',
             style='rounded,filled',
             fontname='Arial',
             fontsize='10',
             margin='0.2',
             penwidth='1.5'
    )
    dot.attr('edge', arrowsize='0.8', color='#666666')

    ready_ids = {n.id for n in get_ready_nodes(graph.frontier_nodes, legacy_title_prerequisites,
                                                report_orphans=False)}
    fills = {'completed': COMPLETED_COLOR, 'ready': READY_COLOR, 'blocked': BLOCKED_COLOR}

    branch_titles = {b.id: b.title for b in graph.strategic_branches}
    branch_ids: List[str] = []
    for node in graph.frontier_nodes:
        if node.branch not in branch_ids:
            branch_ids.append(node.branch)

    for branch_id in branch_ids:
        with dot.subgraph(name=f'cluster_{branch_id}') as cluster:
            cluster.attr(label=branch_titles.get(branch_id, branch_id), style='rounded', color='#999999')
            for node in graph.frontier_nodes:
                if node.branch != branch_id:
                    continue
                state = node_state(node, ready_ids)
                label = f"{node.title}\\n({node.duration}, ⭐{node.difficulty})"
                cluster.node(
                    node.id,
                    label,
                    fillcolor=fills[state],
                    tooltip=node.description or node.title
                )

    dependencies = build_dependency_graph(graph.frontier_nodes, legacy_title_prerequisites)
    for vertex, data in dependencies.nodes(data=True):
        if data.get('orphan'):
            dot.node(
                vertex,
                f"missing: {vertex}",
                style='dashed',
                color=ORPHAN_COLOR,
                fontcolor=ORPHAN_COLOR
            )

    for source, target in dependencies.edges():
        if dependencies.nodes[source].get('orphan'):
            dot.edge(source, target, style='dashed', color=ORPHAN_COLOR)
        else:
            dot.edge(source, target)

    return dot
