from pydantic import BaseModel, Field, AliasChoices, model_validator
from typing import List, Dict, Any, Optional, Literal

NodeType = Literal["start", "action", "approval", "condition", "wait", "end"]
NODE_TYPES = ("start", "action", "approval", "condition", "wait", "end")


class NodeMetadata(BaseModel):
    type: str
    label: str
    description: str
    inputs: List[str]
    outputs: List[str]
    params: Dict[str, Any]


class Position(BaseModel):
    x: float = 0
    y: float = 0


class NodeData(BaseModel):
    config: Dict[str, Any] = Field(default_factory=dict)


class WorkflowNode(BaseModel):
    id: str
    type: NodeType
    label: str
    position: Position = Field(default_factory=Position)
    data: NodeData = Field(default_factory=NodeData)

    @property
    def config(self) -> Dict[str, Any]:
        return self.data.config


class WorkflowConnection(BaseModel):
    id: str
    source: str
    target: str
    sourceHandle: Optional[str] = None
    targetHandle: Optional[str] = None
    # Older documents call the display label "condition"
    label: Optional[str] = Field(default=None, validation_alias=AliasChoices("label", "condition"))


def find_invariant_violations(nodes, connections) -> List[str]:
    """Lists every broken graph invariant (ids, endpoints, self-loops, duplicates)."""
    problems = []

    node_ids = set()
    for node in nodes:
        if node.id in node_ids:
            problems.append(f"Duplicate node id: {node.id}")
        node_ids.add(node.id)

    connection_ids = set()
    seen = set()
    for conn in connections:
        if conn.id in connection_ids:
            problems.append(f"Duplicate connection id: {conn.id}")
        connection_ids.add(conn.id)

        if conn.source not in node_ids:
            problems.append(f"Connection {conn.id} references missing source node {conn.source}")
        if conn.target not in node_ids:
            problems.append(f"Connection {conn.id} references missing target node {conn.target}")
        if conn.source == conn.target:
            problems.append(f"Connection {conn.id} connects node {conn.source} to itself")

        key = (conn.source, conn.target, conn.sourceHandle)
        if key in seen:
            problems.append(f"Connection {conn.id} duplicates an existing {conn.source} -> {conn.target} connection")
        seen.add(key)

    return problems


class Workflow(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    status: Literal["draft", "active", "inactive"] = "draft"
    nodes: List[WorkflowNode] = Field(default_factory=list)
    connections: List[WorkflowConnection] = Field(
        default_factory=list, validation_alias=AliasChoices("connections", "edges")
    )

    @model_validator(mode="after")
    def check_graph(self):
        problems = find_invariant_violations(self.nodes, self.connections)
        if problems:
            raise ValueError("; ".join(problems))
        return self


# --- Render layer (React Flow shapes) ---

class FlowNodeData(BaseModel):
    label: str
    config: Dict[str, Any] = Field(default_factory=dict)
    nodeId: str
    summary: Optional[str] = None


class FlowNode(BaseModel):
    id: str
    type: str
    position: Position
    data: FlowNodeData


class FlowEdge(BaseModel):
    id: str
    source: str
    target: str
    sourceHandle: Optional[str] = None
    targetHandle: Optional[str] = None
    label: Optional[str] = None


# --- API envelope ---

class ApiError(BaseModel):
    code: str
    message: str


class PageMeta(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class Envelope(BaseModel):
    success: bool
    data: Any = None
    meta: Optional[Dict[str, Any]] = None
    error: Optional[ApiError] = None


# --- Request bodies ---

class AddNodeRequest(BaseModel):
    type: NodeType
    position: Position = Field(default_factory=Position)


class ConnectRequest(BaseModel):
    source: str
    target: str
    sourceHandle: Optional[str] = None
    targetHandle: Optional[str] = None


class ConfigUpdate(BaseModel):
    config: Dict[str, Any]


class SelectRequest(BaseModel):
    nodeId: Optional[str] = None


class QueryResult(BaseModel):
    columns: List[str]
    rows: List[List[Any]] = Field(default_factory=list)


class ProcessedQuery(QueryResult):
    """Filter, group and sort settings applied to a query result."""
    filterColumn: Optional[str] = None
    filterValue: Optional[str] = None
    groupByColumn: Optional[str] = None
    aggregateColumn: Optional[str] = None
    aggregationType: Literal["none", "count", "sum", "avg", "min", "max"] = "count"
    sortColumn: Optional[str] = None
    sortDirection: Literal["asc", "desc"] = "asc"

    def processing(self) -> Dict[str, Any]:
        return {
            "filter_column": self.filterColumn,
            "filter_value": self.filterValue,
            "group_by": self.groupByColumn,
            "aggregate_column": self.aggregateColumn,
            "aggregation": self.aggregationType,
            "sort_column": self.sortColumn,
            "sort_direction": self.sortDirection,
        }


class QueryResultRequest(ProcessedQuery):
    page: int = 1
    limit: Optional[int] = None


class ExportRequest(ProcessedQuery):
    format: Literal["csv", "json"] = "csv"


class ChartRequest(ProcessedQuery):
    chartType: Literal["bar", "line", "pie"] = "bar"
    xColumn: Optional[str] = None
    yColumn: Optional[str] = None
