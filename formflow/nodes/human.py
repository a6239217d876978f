from typing import Optional, Literal
from .base import BaseNodeType, NodeConfig


class ApprovalConfig(NodeConfig):
    approvalAction: Literal["approve", "disapprove"] = "approve"
    targetFormId: Optional[str] = None
    targetFormName: Optional[str] = None
    notes: Optional[str] = None


class ApprovalNode(BaseNodeType):
    """
    Approves or disapproves the submissions of a form.
    """
    NODE_TYPE = "approval"
    LABEL = "Approval"
    DESCRIPTION = "Approve or disapprove form submissions"
    PARAMS = {
        "approvalAction": {
            "type": "string",
            "enum": ["approve", "disapprove"],
            "default": "approve",
        },
        "targetFormId": {"type": "string", "description": "Form to approve/disapprove"},
        "notes": {"type": "string", "description": "Approval/disapproval notes"},
    }
    CONFIG_MODEL = ApprovalConfig

    @classmethod
    def describe(cls, parsed: ApprovalConfig) -> str:
        action = "Approve" if parsed.approvalAction == "approve" else "Disapprove"
        return f"{action} submissions for {parsed.targetFormName or 'selected form'}"

    @classmethod
    def check(cls, parsed: ApprovalConfig):
        if not parsed.targetFormId:
            return ["Please select a form to approve/disapprove"]
        return []
