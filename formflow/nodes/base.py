from pydantic import BaseModel, ConfigDict, ValidationError
from typing import List, Dict, Any, Optional
from ..schemas import NodeMetadata

UNCONFIGURED = "Click to configure"

ComparisonOperators = [
    "==", "!=", "<", ">", "<=", ">=",
    "contains", "not_contains", "in", "not_in",
    "exists", "not_exists", "starts_with", "ends_with",
]


class NodeConfig(BaseModel):
    """Fields every node configuration may carry. Unknown keys are kept."""
    model_config = ConfigDict(extra="allow")

    label: Optional[str] = None
    description: Optional[str] = None


class BaseNodeType:
    """Palette metadata and configuration interpretation for one node type"""
    NODE_TYPE = "base"
    LABEL = "Base"
    DESCRIPTION = "Base Node"
    INPUTS = ["default"]
    OUTPUTS = ["default"]
    PARAMS = {}  # Example: {"waitUnit": {"type": "string", "enum": [...]}}
    CONFIG_MODEL = NodeConfig

    @classmethod
    def get_schema(cls) -> NodeMetadata:
        return NodeMetadata(
            type=cls.NODE_TYPE,
            label=cls.LABEL,
            description=cls.DESCRIPTION,
            inputs=cls.INPUTS,
            outputs=cls.OUTPUTS,
            params=cls.PARAMS
        )

    @classmethod
    def default_label(cls) -> str:
        name = cls.NODE_TYPE
        return f"{name[:1].upper()}{name[1:].replace('-', ' ', 1)} Node"

    @classmethod
    def parse_config(cls, config: Dict[str, Any]):
        return cls.CONFIG_MODEL.model_validate(config or {})

    @classmethod
    def output_ports(cls, config: Dict[str, Any]) -> List[Optional[str]]:
        """Source handle ids; None is the unnamed default handle."""
        return [None] if cls.OUTPUTS else []

    @classmethod
    def accepts_input(cls) -> bool:
        return bool(cls.INPUTS)

    @classmethod
    def summarize(cls, config: Dict[str, Any]) -> str:
        try:
            parsed = cls.parse_config(config)
        except ValidationError:
            return UNCONFIGURED
        return cls.describe(parsed)

    @classmethod
    def describe(cls, parsed) -> str:
        return UNCONFIGURED

    @classmethod
    def validate_config(cls, config: Dict[str, Any]) -> List[str]:
        """Advisory checks; an empty list means the panel would save."""
        try:
            parsed = cls.parse_config(config)
        except ValidationError as e:
            return [_format_error(err) for err in e.errors()]
        return cls.check(parsed)

    @classmethod
    def check(cls, parsed) -> List[str]:
        return []


def _format_error(err: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in err.get("loc", ()))
    if location:
        return f"{location}: {err.get('msg')}"
    return err.get("msg", "Invalid configuration")
