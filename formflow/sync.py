"""
Render-layer sync.
Converts the authoritative node/connection lists into the canvas (React Flow)
node/edge arrays and back.
"""
import copy
from typing import List, Tuple
from .schemas import (
    WorkflowNode,
    WorkflowConnection,
    NodeData,
    Position,
    FlowNode,
    FlowNodeData,
    FlowEdge,
)
from .node_registry import registry


def to_flow_node(node: WorkflowNode) -> FlowNode:
    return FlowNode(
        id=node.id,
        type=node.type,
        position=Position(x=node.position.x, y=node.position.y),
        data=FlowNodeData(
            label=node.label,
            config=copy.deepcopy(node.config),
            nodeId=node.id,
            summary=registry.summarize(node),
        ),
    )


def to_flow_edge(conn: WorkflowConnection) -> FlowEdge:
    return FlowEdge(
        id=conn.id,
        source=conn.source,
        target=conn.target,
        sourceHandle=conn.sourceHandle,
        targetHandle=conn.targetHandle,
        label=conn.label,
    )


def from_flow(flow_nodes: List[FlowNode], flow_edges: List[FlowEdge]) -> Tuple[List[WorkflowNode], List[WorkflowConnection]]:
    nodes = [
        WorkflowNode(
            id=fn.id,
            type=fn.type,
            label=fn.data.label,
            position=Position(x=fn.position.x, y=fn.position.y),
            data=NodeData(config=copy.deepcopy(fn.data.config)),
        )
        for fn in flow_nodes
    ]
    connections = [
        WorkflowConnection(
            id=edge.id,
            source=edge.source,
            target=edge.target,
            sourceHandle=edge.sourceHandle,
            targetHandle=edge.targetHandle,
            label=edge.label,
        )
        for edge in flow_edges
    ]
    return nodes, connections


def _needs_update(existing: FlowNode, node: WorkflowNode) -> bool:
    return (
        existing.type != node.type
        or existing.position.x != node.position.x
        or existing.position.y != node.position.y
        or existing.data.label != node.label
        or existing.data.config != node.config
    )


class RenderSync:
    """
    Holds the current render arrays. Each sync keeps the previous FlowNode
    object for nodes whose observable fields are unchanged, and keeps the
    whole edge array when the connection id set is unchanged.
    """

    def __init__(self):
        self.nodes: List[FlowNode] = []
        self.edges: List[FlowEdge] = []
        self.stats = {"reused": 0, "rebuilt": 0, "edges_rebuilt": False}

    def sync(self, nodes: List[WorkflowNode], connections: List[WorkflowConnection]):
        current = {fn.id: fn for fn in self.nodes}
        reused = 0
        new_nodes = []
        for node in nodes:
            existing = current.get(node.id)
            if existing is not None and not _needs_update(existing, node):
                new_nodes.append(existing)
                reused += 1
            else:
                new_nodes.append(to_flow_node(node))

        new_edge_ids = {conn.id for conn in connections}
        current_edge_ids = {edge.id for edge in self.edges}
        edges_rebuilt = new_edge_ids != current_edge_ids or len(connections) != len(self.edges)
        if edges_rebuilt:
            self.edges = [to_flow_edge(conn) for conn in connections]

        self.nodes = new_nodes
        self.stats = {
            "reused": reused,
            "rebuilt": len(new_nodes) - reused,
            "edges_rebuilt": edges_rebuilt,
        }
        return self.nodes, self.edges
