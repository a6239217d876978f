"""
Control Flow Nodes for the Workflow Designer

Provides branching and pausing constructs:
- ConditionNode: form-level / field-level predicates with true/false outputs,
  legacy "if" conditions, and legacy "switch" conditions with one output per case
- WaitNode: Pause for a duration or until a form is completed
"""

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from typing import List, Any, Optional, Literal, Union, Annotated
from .base import BaseNodeType, NodeConfig, UNCONFIGURED, ComparisonOperators

ComparisonOperator = Literal[
    "==", "!=", "<", ">", "<=", ">=",
    "contains", "not_contains", "in", "not_in",
    "exists", "not_exists", "starts_with", "ends_with",
]
LogicalOperator = Literal["AND", "OR"]
SystemType = Literal["form_level", "field_level"]


class FormLevelCondition(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    conditionType: Literal["form_status", "form_submission", "user_property"]
    formId: Optional[str] = None
    operator: ComparisonOperator
    value: Any = None


class FieldLevelCondition(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    formId: Optional[str] = None
    fieldId: Optional[str] = None
    fieldType: Optional[str] = None
    operator: ComparisonOperator
    value: Any = None


class ConditionItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    systemType: SystemType
    formLevelCondition: Optional[FormLevelCondition] = None
    fieldLevelCondition: Optional[FieldLevelCondition] = None
    logicalOperatorWithNext: Optional[LogicalOperator] = None


class EnhancedCondition(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    systemType: SystemType
    formLevelCondition: Optional[FormLevelCondition] = None
    fieldLevelCondition: Optional[FieldLevelCondition] = None
    logicalOperator: Optional[LogicalOperator] = None
    conditions: List[ConditionItem] = Field(default_factory=list)
    useManualExpression: bool = False
    manualExpression: Optional[str] = None


class FieldPath(BaseModel):
    type: Literal["form", "user", "system", "static"] = "form"
    path: Optional[str] = None
    value: Any = None


class SimpleCondition(BaseModel):
    id: Optional[str] = None
    leftOperand: FieldPath
    operator: ComparisonOperator
    rightOperand: Optional[FieldPath] = None


class LogicalGroup(BaseModel):
    id: Optional[str] = None
    operator: LogicalOperator
    conditions: List[Union[SimpleCondition, "LogicalGroup"]] = Field(default_factory=list)


LogicalGroup.model_rebuild()


class IfConditionConfig(BaseModel):
    type: Literal["if"]
    condition: Optional[Union[SimpleCondition, LogicalGroup]] = None
    truePath: Optional[str] = None
    falsePath: Optional[str] = None


class SwitchCase(BaseModel):
    # Case values double as handle ids, so numbers are kept as their text
    model_config = ConfigDict(coerce_numbers_to_str=True)

    value: str
    path: Optional[str] = None


class SwitchConditionConfig(BaseModel):
    type: Literal["switch"]
    field: Optional[FieldPath] = None
    cases: List[SwitchCase] = Field(default_factory=list)
    defaultPath: Optional[str] = None


class ConditionConfig(NodeConfig):
    enhancedCondition: Optional[EnhancedCondition] = None
    conditionConfig: Optional[
        Annotated[Union[IfConditionConfig, SwitchConditionConfig], Field(discriminator="type")]
    ] = None


class ConditionNode(BaseNodeType):
    """Branches on a predicate ('true'/'false') or on a switch value (one port per case)."""
    NODE_TYPE = "condition"
    LABEL = "Condition"
    DESCRIPTION = "Branch workflow based on conditions"
    OUTPUTS = ["true", "false"]  # Switch conditions add per-case outputs
    PARAMS = {
        "enhancedCondition": {
            "type": "object",
            "description": "Form-level or field-level predicate",
            "operators": ComparisonOperators,
        },
        "conditionConfig": {
            "type": "object",
            "description": "Legacy if/switch condition",
        },
    }
    CONFIG_MODEL = ConditionConfig

    @classmethod
    def kind(cls, parsed: ConditionConfig) -> str:
        if parsed.enhancedCondition:
            return "Form Level" if parsed.enhancedCondition.systemType == "form_level" else "Field Level"
        if isinstance(parsed.conditionConfig, SwitchConditionConfig):
            return "Switch"
        return "Condition"

    @classmethod
    def output_ports(cls, config):
        try:
            parsed = cls.parse_config(config)
        except ValidationError:
            return ["true", "false"]
        legacy = parsed.conditionConfig
        if isinstance(legacy, SwitchConditionConfig):
            ports = [str(case.value) for case in legacy.cases if case.value]
            if legacy.defaultPath:
                ports.append("default")
            return ports
        return ["true", "false"]

    @classmethod
    def describe(cls, parsed: ConditionConfig) -> str:
        enhanced = parsed.enhancedCondition
        if enhanced:
            if enhanced.systemType == "form_level" and enhanced.formLevelCondition:
                cond = enhanced.formLevelCondition
                return f"{cond.conditionType} {cond.operator} {cond.value}"
            if enhanced.systemType == "field_level" and enhanced.fieldLevelCondition:
                cond = enhanced.fieldLevelCondition
                return f"Field {cond.operator} {cond.value}"
            if enhanced.conditions:
                return f"{len(enhanced.conditions)} conditions"
            return "Enhanced condition configured"

        legacy = parsed.conditionConfig
        if isinstance(legacy, IfConditionConfig):
            cond = legacy.condition
            if isinstance(cond, SimpleCondition):
                left = cond.leftOperand.path or cond.leftOperand.type
                right = ""
                if cond.rightOperand is not None:
                    right = cond.rightOperand.value or cond.rightOperand.path or ""
                return f"{left} {cond.operator} {right}".rstrip()
            return "If condition configured"
        if isinstance(legacy, SwitchConditionConfig):
            field = legacy.field.path if legacy.field and legacy.field.path else "field"
            return f"Switch {field} ({len(legacy.cases)} cases)"

        return UNCONFIGURED

    @classmethod
    def check(cls, parsed: ConditionConfig):
        problems = []
        enhanced = parsed.enhancedCondition
        legacy = parsed.conditionConfig
        if enhanced is None and legacy is None:
            return ["Please configure a condition"]

        if enhanced is not None:
            if enhanced.useManualExpression:
                if not (enhanced.manualExpression or "").strip():
                    problems.append("Please enter a logical expression")
            elif enhanced.conditions:
                pass
            elif enhanced.systemType == "form_level" and not enhanced.formLevelCondition:
                problems.append("Please configure the form-level condition")
            elif enhanced.systemType == "field_level":
                cond = enhanced.fieldLevelCondition
                if not cond or not cond.fieldId:
                    problems.append("Please select a field for the condition")

        if isinstance(legacy, SwitchConditionConfig):
            if not legacy.cases:
                problems.append("Switch conditions need at least one case")
            values = [case.value for case in legacy.cases]
            if len(values) != len(set(values)):
                problems.append("Switch case values must be unique")
        elif isinstance(legacy, IfConditionConfig) and legacy.condition is None:
            problems.append("Please configure the if condition")
        return problems


class WaitConfig(NodeConfig):
    waitDuration: Optional[int] = Field(default=None, ge=0)
    waitUnit: Literal["minutes", "hours", "days"] = "minutes"
    waitForCompletion: bool = False


class WaitNode(BaseNodeType):
    NODE_TYPE = "wait"
    LABEL = "Wait"
    DESCRIPTION = "Wait for time or events"
    PARAMS = {
        "waitDuration": {"type": "int", "description": "How long to wait"},
        "waitUnit": {
            "type": "string",
            "enum": ["minutes", "hours", "days"],
            "default": "minutes",
        },
        "waitForCompletion": {
            "type": "boolean",
            "default": False,
            "description": "Wait until the assigned form is completed",
        },
    }
    CONFIG_MODEL = WaitConfig

    @classmethod
    def describe(cls, parsed: WaitConfig) -> str:
        if parsed.waitForCompletion:
            return "Wait for completion"
        if parsed.waitDuration:
            unit = parsed.waitUnit if parsed.waitDuration != 1 else parsed.waitUnit[:-1]
            return f"Wait {parsed.waitDuration} {unit}"
        return UNCONFIGURED

    @classmethod
    def check(cls, parsed: WaitConfig):
        if not parsed.waitForCompletion and not parsed.waitDuration:
            return ["Please enter a wait duration"]
        return []
