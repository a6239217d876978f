from typing import Optional, Literal
from .base import BaseNodeType, NodeConfig, UNCONFIGURED

TriggerType = Literal[
    "form_submission",
    "form_completion",
    "form_approval",
    "form_rejection",
    "rule_success",
    "rule_failure",
    "manual",
    "webhook",
    "schedule",
]

# Triggers that fire on a specific form and therefore need one selected
FORM_TRIGGERS = ("form_submission", "form_completion", "form_approval", "form_rejection")


class StartConfig(NodeConfig):
    triggerType: TriggerType = "form_submission"
    triggerFormId: Optional[str] = None
    triggerFormName: Optional[str] = None


class StartNode(BaseNodeType):
    """Entry point of the workflow; holds the trigger settings."""

    NODE_TYPE = "start"
    LABEL = "Start"
    DESCRIPTION = "Trigger point for the workflow"
    INPUTS = []
    PARAMS = {
        "triggerType": {
            "type": "string",
            "enum": list(TriggerType.__args__),
            "default": "form_submission",
            "description": "Event that starts the workflow",
        },
        "triggerFormId": {
            "type": "string",
            "description": "Form whose submissions trigger the workflow",
        },
    }
    CONFIG_MODEL = StartConfig

    @classmethod
    def describe(cls, parsed: StartConfig) -> str:
        trigger = parsed.triggerType.replace("_", " ").title()
        if parsed.triggerFormName or parsed.triggerFormId:
            return f"{trigger}: {parsed.triggerFormName or parsed.triggerFormId}"
        if parsed.triggerType in FORM_TRIGGERS:
            return UNCONFIGURED
        return trigger

    @classmethod
    def check(cls, parsed: StartConfig):
        if parsed.triggerType in FORM_TRIGGERS and not parsed.triggerFormId:
            return ["Please select a form to trigger this workflow"]
        return []


class EndNode(BaseNodeType):
    NODE_TYPE = "end"
    LABEL = "End"
    DESCRIPTION = "End point of the workflow"
    OUTPUTS = []

    @classmethod
    def describe(cls, parsed: NodeConfig) -> str:
        return "Workflow complete"
