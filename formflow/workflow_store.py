import json
import math
import os
import re
import shutil
import logging
from typing import Any, Dict, List, Optional
from pydantic import ValidationError
from .errors import InvalidRequestError, NotFoundError, ProjectError
from .schemas import NodeData, Position, Workflow, WorkflowConnection, WorkflowNode

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def _round(value: float) -> int:
    # Half-up, as the canvas client rounds
    return int(math.floor(float(value or 0) + 0.5))


def node_to_row(workflow_id: str, node: WorkflowNode) -> Dict[str, Any]:
    return {
        "id": node.id,
        "workflow_id": workflow_id,
        "node_type": node.type,
        "label": node.label,
        "position_x": _round(node.position.x),
        "position_y": _round(node.position.y),
        "config": node.config or {},
    }


def row_to_node(row: Dict[str, Any]) -> WorkflowNode:
    return WorkflowNode(
        id=row["id"],
        type=row["node_type"],
        label=row["label"],
        position=Position(x=row.get("position_x", 0), y=row.get("position_y", 0)),
        data=NodeData(config=row.get("config") or {}),
    )


def connection_to_row(workflow_id: str, conn: WorkflowConnection) -> Dict[str, Any]:
    return {
        "id": conn.id,
        "workflow_id": workflow_id,
        "source_node_id": conn.source,
        "target_node_id": conn.target,
        "source_handle": conn.sourceHandle or None,
        "target_handle": conn.targetHandle or None,
        "condition_type": conn.label,
    }


def row_to_connection(row: Dict[str, Any]) -> WorkflowConnection:
    return WorkflowConnection(
        id=row["id"],
        source=row["source_node_id"],
        target=row["target_node_id"],
        sourceHandle=row.get("source_handle"),
        targetHandle=row.get("target_handle"),
        label=row.get("condition_type"),
    )


class WorkflowStore:
    """
    File-backed persistence: one folder per project, one JSON document per
    workflow holding node and connection rows.
    """

    def __init__(self, root_dir: str, default_project: str = "default"):
        self.root_dir = str(root_dir)
        self.default_project = default_project
        self.current_project = self.default_project
        self._ensure_structure()

    def _ensure_structure(self):
        """Ensures the base projects directory exists."""
        os.makedirs(self.root_dir, exist_ok=True)
        # Ensure default project exists
        self.create_project(self.default_project)

    def _check_name(self, name: str, kind: str):
        if not name or not NAME_PATTERN.match(name):
            raise InvalidRequestError(f"Invalid {kind} name: {name!r}")

    # --- projects ---

    def get_project_dir(self, project: str) -> str:
        return os.path.join(self.root_dir, project)

    def get_workflows_dir(self, project: Optional[str] = None) -> str:
        return os.path.join(self.get_project_dir(project or self.current_project), "workflows")

    def create_project(self, name: str):
        self._check_name(name, "project")
        path = self.get_project_dir(name)
        if not os.path.exists(path):
            os.makedirs(os.path.join(path, "workflows"))
            logger.info(f"Created project: {name}")
        return path

    def list_projects(self):
        if not os.path.exists(self.root_dir):
            return []
        return sorted(d for d in os.listdir(self.root_dir)
                      if os.path.isdir(os.path.join(self.root_dir, d)))

    def set_current_project(self, name: str):
        self._check_name(name, "project")
        if not os.path.exists(self.get_project_dir(name)):
            raise NotFoundError(f"Project {name} does not exist")
        self.current_project = name
        logger.info(f"Switched to project: {name}")

    def get_current_project(self):
        return self.current_project

    def delete_project(self, name: str):
        self._check_name(name, "project")
        if name == self.default_project:
            raise ProjectError("Cannot delete default project")

        if name == self.current_project:
            raise ProjectError("Cannot delete active project")

        path = self.get_project_dir(name)
        if not os.path.exists(path):
            raise NotFoundError(f"Project {name} does not exist")

        shutil.rmtree(path)
        logger.info(f"Deleted project: {name}")

    # --- workflows ---

    def _workflow_path(self, workflow_id: str) -> str:
        self._check_name(workflow_id, "workflow")
        return os.path.join(self.get_workflows_dir(), f"{workflow_id}.json")

    def list_workflows(self) -> List[str]:
        workflows_dir = self.get_workflows_dir()
        if not os.path.exists(workflows_dir):
            return []
        return sorted(f[:-len(".json")] for f in os.listdir(workflows_dir) if f.endswith(".json"))

    def exists(self, workflow_id: str) -> bool:
        return os.path.exists(self._workflow_path(workflow_id))

    def save_workflow(self, workflow_id: str, workflow: Workflow):
        path = self._workflow_path(workflow_id)
        os.makedirs(os.path.dirname(path), exist_ok=True)

        skipped = [n.id for n in workflow.nodes if not n.label]
        if skipped:
            logger.warning(f"Skipping {len(skipped)} node(s) without a label in {workflow_id}")
        kept = {n.id for n in workflow.nodes if n.label}

        document = {
            "workflow": {
                "id": workflow_id,
                "name": workflow.name,
                "description": workflow.description,
                "status": workflow.status,
            },
            "nodes": [node_to_row(workflow_id, n) for n in workflow.nodes if n.id in kept],
            "connections": [
                connection_to_row(workflow_id, c) for c in workflow.connections
                if c.source in kept and c.target in kept
            ],
        }
        with open(path, "w") as f:
            json.dump(document, f, indent=2)
        logger.info(
            f"Saved workflow {workflow_id}: {len(document['nodes'])} nodes, "
            f"{len(document['connections'])} connections"
        )

    def save_graph(self, workflow_id: str, nodes: List[WorkflowNode], connections: List[WorkflowConnection]):
        """Save callback for an editor; keeps the stored name/description/status."""
        meta = {}
        if self.exists(workflow_id):
            meta = self.load_workflow(workflow_id).model_dump(include={"name", "description", "status"})
        self.save_workflow(workflow_id, Workflow(id=workflow_id, nodes=nodes, connections=connections, **meta))

    def load_workflow(self, workflow_id: str) -> Workflow:
        path = self._workflow_path(workflow_id)
        if not os.path.exists(path):
            raise NotFoundError(f"Workflow {workflow_id} not found")

        with open(path, "r") as f:
            document = json.load(f)

        meta = document.get("workflow", {})
        try:
            return Workflow(
                id=workflow_id,
                name=meta.get("name"),
                description=meta.get("description"),
                status=meta.get("status") or "draft",
                nodes=[row_to_node(row) for row in document.get("nodes", [])],
                connections=[row_to_connection(row) for row in document.get("connections", [])],
            )
        except (KeyError, ValidationError) as e:
            logger.error(f"Stored workflow {workflow_id} is invalid: {e}")
            raise InvalidRequestError(f"Stored workflow {workflow_id} is invalid") from e

    def delete_workflow(self, workflow_id: str):
        path = self._workflow_path(workflow_id)
        if not os.path.exists(path):
            raise NotFoundError(f"Workflow {workflow_id} not found")
        os.remove(path)
        logger.info(f"Deleted workflow: {workflow_id}")
