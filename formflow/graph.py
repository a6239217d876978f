"""
Graph queries over a workflow's nodes and connections.
Branch discovery and advisory validation; nothing here executes a workflow.
"""
from typing import Dict, List, Tuple
from .schemas import WorkflowNode, WorkflowConnection, find_invariant_violations
from .node_registry import registry


class ValidationResult:
    """Result of validation with errors and warnings."""

    def __init__(self):
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def is_valid(self) -> bool:
        """Check if validation passed (no errors)."""
        return len(self.errors) == 0

    def add_error(self, message: str):
        self.errors.append(message)

    def add_warning(self, message: str):
        self.warnings.append(message)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "valid": self.is_valid(),
            "errors": self.errors,
            "warnings": self.warnings
        }


def _successors(connections: List[WorkflowConnection]) -> Dict[str, List[WorkflowConnection]]:
    out = {}
    for conn in connections:
        out.setdefault(conn.source, []).append(conn)
    return out


def nodes_in_branch(connections: List[WorkflowConnection], start_id: str) -> List[str]:
    """All node ids reachable from start_id (inclusive), depth-first, each once."""
    successors = _successors(connections)
    visited = set()
    order = []
    stack = [start_id]
    while stack:
        node_id = stack.pop()
        if node_id in visited:
            continue
        visited.add(node_id)
        order.append(node_id)
        # Reverse so the first connection is explored first
        for conn in reversed(successors.get(node_id, [])):
            if conn.target not in visited:
                stack.append(conn.target)
    return order


def conditional_branches(connections: List[WorkflowConnection], condition_id: str) -> Tuple[List[str], List[str]]:
    """
    Nodes downstream of a condition's true and false outputs.
    An explicit 'true' wins over 'false'; connections marked neither way
    count as the true (default) path.
    """
    true_nodes, false_nodes = [], []
    for conn in connections:
        if conn.source != condition_id:
            continue
        branch = nodes_in_branch(connections, conn.target)
        if conn.sourceHandle == "true" or conn.label == "true":
            true_nodes.extend(branch)
        elif conn.sourceHandle == "false" or conn.label == "false":
            false_nodes.extend(branch)
        else:
            true_nodes.extend(branch)
    return true_nodes, false_nodes


def validate_workflow(nodes: List[WorkflowNode], connections: List[WorkflowConnection]) -> ValidationResult:
    result = ValidationResult()

    for problem in find_invariant_violations(nodes, connections):
        result.add_error(problem)

    starts = [n for n in nodes if n.type == "start"]
    if not starts:
        result.add_error("Workflow has no start node")
    elif len(starts) > 1:
        result.add_error(f"Workflow has {len(starts)} start nodes")

    if nodes and not any(n.type == "end" for n in nodes):
        result.add_warning("Workflow has no end node")

    by_id = {n.id: n for n in nodes}
    for conn in connections:
        source = by_id.get(conn.source)
        target = by_id.get(conn.target)
        if source is not None:
            ports = registry.output_ports(source)
            if conn.sourceHandle not in ports:
                result.add_warning(
                    f"Connection {conn.id} leaves {source.label} through unknown port {conn.sourceHandle!r}"
                )
        if target is not None:
            cls = registry.get_node_class(target.type)
            if cls and not cls.accepts_input():
                result.add_warning(f"Connection {conn.id} enters {target.label}, which takes no input")

    if len(starts) == 1:
        reachable = set(nodes_in_branch(connections, starts[0].id))
        for node in nodes:
            if node.id not in reachable:
                result.add_warning(f"{node.label} is not reachable from the start node")

    for node in nodes:
        for problem in registry.validate_node(node):
            result.add_warning(f"{node.label}: {problem}")

    return result
