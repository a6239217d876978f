"""
Graph editor state controller.

Keeps the authoritative node/connection lists for one workflow, exposes the
add/move/connect/configure/delete operations, and keeps the render arrays
in sync. Every mutation marks the render layer stale (it is rebuilt lazily
on the next read) and emits an event to subscribed listeners.
"""
import copy
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional
from .errors import InvalidRequestError
from .node_registry import registry
from .schemas import (
    NodeData,
    Position,
    Workflow,
    WorkflowConnection,
    WorkflowNode,
)
from .sync import RenderSync

logger = logging.getLogger(__name__)

# (event, payload) -> None
EventListener = Callable[[str, Dict[str, Any]], None]
SaveCallback = Callable[[List[WorkflowNode], List[WorkflowConnection]], None]


def generate_id() -> str:
    return str(uuid.uuid4())


class GraphEditor:
    def __init__(
        self,
        workflow_id: Optional[str] = None,
        save_callback: Optional[SaveCallback] = None,
        on_select: Optional[Callable[[Optional[str]], None]] = None,
        id_factory: Callable[[], str] = generate_id,
    ):
        self.workflow_id = workflow_id
        self.nodes: List[WorkflowNode] = []
        self.connections: List[WorkflowConnection] = []
        self.selected_node_id: Optional[str] = None

        self._save_callback = save_callback
        self._select_handler = on_select
        self._id_factory = id_factory
        self._listeners: List[EventListener] = []
        self._render = RenderSync()
        self._sync_pending = False
        self._initialized = False

    # --- wiring ---

    def subscribe(self, listener: EventListener):
        """Registers an event listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_select_handler(self, handler: Optional[Callable[[Optional[str]], None]]):
        self._select_handler = handler

    def set_save_callback(self, callback: Optional[SaveCallback]):
        self._save_callback = callback

    def _emit(self, event: str, payload: Dict[str, Any]):
        payload = {"workflow_id": self.workflow_id, **payload}
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception as e:
                logger.error(f"Editor listener failed on {event}: {e}")

    def _schedule_sync(self):
        self._sync_pending = True

    # --- loading ---

    def load(self, nodes: List[WorkflowNode], connections: List[WorkflowConnection]) -> bool:
        """Initialises the editor from persisted state. Only the first call has effect."""
        if self._initialized:
            logger.warning(f"Editor for workflow {self.workflow_id} already initialised, ignoring load")
            return False
        workflow = Workflow(nodes=nodes, connections=connections)
        self.nodes = [n.model_copy(deep=True) for n in workflow.nodes]
        self.connections = [c.model_copy(deep=True) for c in workflow.connections]
        self._initialized = True
        logger.info(
            f"Initialised editor for workflow {self.workflow_id}: "
            f"{len(self.nodes)} nodes, {len(self.connections)} connections"
        )
        self._schedule_sync()
        return True

    # --- queries ---

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def get_connection(self, connection_id: str) -> Optional[WorkflowConnection]:
        return next((c for c in self.connections if c.id == connection_id), None)

    @property
    def selected_node(self) -> Optional[WorkflowNode]:
        if not self.selected_node_id:
            return None
        return self.get_node(self.selected_node_id)

    @property
    def trigger_form_id(self) -> Optional[str]:
        start = next((n for n in self.nodes if n.type == "start"), None)
        return start.config.get("triggerFormId") if start else None

    # --- mutations ---

    def add_node(self, node_type: str, position: Position) -> WorkflowNode:
        cls = registry.get_node_class(node_type)
        if cls is None:
            raise InvalidRequestError(f"Unknown node type: {node_type}")

        self._initialized = True
        node = WorkflowNode(
            id=self._id_factory(),
            type=node_type,
            label=cls.default_label(),
            position=Position(x=position.x, y=position.y),
            data=NodeData(config={}),
        )
        self.nodes = [*self.nodes, node]
        logger.info(f"Added {node_type} node {node.id}")
        self._schedule_sync()
        self._emit("node_added", {"node": node.model_dump()})
        return node

    def connect(
        self,
        source_id: str,
        target_id: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
    ) -> Optional[WorkflowConnection]:
        """Adds a connection; returns None when it would break a graph invariant."""
        reason = self._rejection_reason(source_id, target_id, source_handle)
        if reason:
            logger.warning(f"Rejected connection {source_id} -> {target_id} ({source_handle}): {reason}")
            self._emit("connection_rejected", {
                "source": source_id,
                "target": target_id,
                "sourceHandle": source_handle,
                "reason": reason,
            })
            return None

        conn = WorkflowConnection(
            id=self._id_factory(),
            source=source_id,
            target=target_id,
            sourceHandle=source_handle or None,
            targetHandle=target_handle or None,
        )
        self.connections = [*self.connections, conn]
        logger.info(f"Added connection {conn.id}: {source_id} -> {target_id}")
        self._schedule_sync()
        self._emit("connection_added", {"connection": conn.model_dump()})
        return conn

    def _rejection_reason(self, source_id, target_id, source_handle) -> Optional[str]:
        if not source_id or not target_id:
            return "source and target are required"
        if source_id == target_id:
            return "a node cannot connect to itself"
        if self.get_node(source_id) is None:
            return f"source node {source_id} does not exist"
        if self.get_node(target_id) is None:
            return f"target node {target_id} does not exist"
        handle = source_handle or None
        for conn in self.connections:
            if conn.source == source_id and conn.target == target_id and conn.sourceHandle == handle:
                return "connection already exists"
        return None

    def update_node_config(self, node_id: str, config: Dict[str, Any]) -> Optional[WorkflowNode]:
        """
        Replaces the node's configuration wholesale. The label follows
        config["label"] when it is set; otherwise the current label stays.
        Identical repeated updates change nothing and emit nothing.
        """
        node = self.get_node(node_id)
        if node is None:
            logger.warning(f"Cannot update config: node {node_id} not found")
            return None

        config = dict(config or {})
        label = config.get("label")
        if not isinstance(label, str) or not label.strip():
            label = node.label
        if node.config == config and node.label == label:
            return node

        updated = node.model_copy(update={
            "label": label,
            "data": NodeData(config=copy.deepcopy(config)),
        })
        self.nodes = [updated if n.id == node_id else n for n in self.nodes]
        logger.debug(f"Updated config of node {node_id}")
        self._schedule_sync()
        self._emit("node_updated", {"node": updated.model_dump()})
        return updated

    def move_node(self, node_id: str, position: Position) -> Optional[WorkflowNode]:
        node = self.get_node(node_id)
        if node is None:
            logger.warning(f"Cannot move: node {node_id} not found")
            return None
        if node.position.x == position.x and node.position.y == position.y:
            return node

        moved = node.model_copy(update={"position": Position(x=position.x, y=position.y)})
        self.nodes = [moved if n.id == node_id else n for n in self.nodes]
        self._schedule_sync()
        self._emit("node_moved", {"node_id": node_id, "position": moved.position.model_dump()})
        return moved

    def delete_node(self, node_id: str) -> bool:
        """Removes the node and every connection touching it."""
        if self.get_node(node_id) is None:
            logger.warning(f"Cannot delete: node {node_id} not found")
            return False

        self.nodes = [n for n in self.nodes if n.id != node_id]
        removed = [c.id for c in self.connections if c.source == node_id or c.target == node_id]
        self.connections = [
            c for c in self.connections if c.source != node_id and c.target != node_id
        ]
        if self.selected_node_id == node_id:
            self.selected_node_id = None

        logger.info(f"Deleted node {node_id} and {len(removed)} connection(s)")
        self._schedule_sync()
        self._emit("node_deleted", {"node_id": node_id, "connection_ids": removed})
        return True

    def delete_connection(self, connection_id: str) -> bool:
        if self.get_connection(connection_id) is None:
            logger.warning(f"Cannot delete: connection {connection_id} not found")
            return False
        self.connections = [c for c in self.connections if c.id != connection_id]
        logger.info(f"Deleted connection {connection_id}")
        self._schedule_sync()
        self._emit("connection_deleted", {"connection_id": connection_id})
        return True

    def select_node(self, node_id: Optional[str]) -> Optional[WorkflowNode]:
        if node_id is not None and self.get_node(node_id) is None:
            logger.warning(f"Cannot select: node {node_id} not found")
            return None
        self.selected_node_id = node_id
        if self._select_handler:
            self._select_handler(node_id)
        self._emit("node_selected", {"node_id": node_id})
        return self.selected_node

    def clear_selection(self):
        self.select_node(None)

    # --- render layer ---

    def _ensure_synced(self):
        if self._sync_pending:
            self._render.sync(self.nodes, self.connections)
            self._sync_pending = False

    @property
    def flow_nodes(self):
        self._ensure_synced()
        return self._render.nodes

    @property
    def flow_edges(self):
        self._ensure_synced()
        return self._render.edges

    @property
    def sync_stats(self) -> Dict[str, Any]:
        return dict(self._render.stats)

    def render(self) -> Dict[str, Any]:
        return {
            "nodes": [n.model_dump() for n in self.flow_nodes],
            "edges": [e.model_dump() for e in self.flow_edges],
            "selectedNodeId": self.selected_node_id,
        }

    # --- persistence boundary ---

    def to_workflow(self) -> Workflow:
        return Workflow(id=self.workflow_id, nodes=self.nodes, connections=self.connections)

    def save(self):
        logger.info(
            f"Saving workflow {self.workflow_id}: "
            f"{len(self.nodes)} nodes, {len(self.connections)} connections"
        )
        if self._save_callback is None:
            raise InvalidRequestError("No save callback configured")
        self._save_callback(list(self.nodes), list(self.connections))
        self._emit("workflow_saved", {
            "nodes": len(self.nodes),
            "connections": len(self.connections),
        })
