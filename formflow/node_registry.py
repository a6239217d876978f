import logging
from typing import Dict, List, Optional, Type
from .nodes.base import BaseNodeType, UNCONFIGURED
from .nodes.general import StartNode, EndNode
from .nodes.actions import ActionNode
from .nodes.human import ApprovalNode
from .nodes.control_flow import ConditionNode, WaitNode
from .schemas import WorkflowNode

logger = logging.getLogger(__name__)


class NodeRegistry:
    def __init__(self):
        self.node_classes: Dict[str, Type[BaseNodeType]] = {}

        # Palette order
        self.register(StartNode)
        self.register(ActionNode)
        self.register(ApprovalNode)
        self.register(ConditionNode)
        self.register(WaitNode)
        self.register(EndNode)

    def register(self, cls):
        if hasattr(cls, "NODE_TYPE"):
            self.node_classes[cls.NODE_TYPE] = cls

    def get_node_class(self, node_type: str) -> Optional[Type[BaseNodeType]]:
        return self.node_classes.get(node_type)

    def get_all_metadata(self):
        return [cls.get_schema() for cls in self.node_classes.values()]

    def output_ports(self, node: WorkflowNode) -> List[Optional[str]]:
        cls = self.get_node_class(node.type)
        return cls.output_ports(node.config) if cls else []

    def summarize(self, node: WorkflowNode) -> str:
        cls = self.get_node_class(node.type)
        if not cls:
            return UNCONFIGURED
        return cls.summarize(node.config)

    def validate_node(self, node: WorkflowNode) -> List[str]:
        cls = self.get_node_class(node.type)
        if not cls:
            return [f"Unknown node type: {node.type}"]
        problems = cls.validate_config(node.config)
        if problems:
            logger.debug(f"Node {node.id} ({node.type}) has {len(problems)} configuration problem(s)")
        return problems


registry = NodeRegistry()
