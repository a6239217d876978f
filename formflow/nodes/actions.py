"""
Action node configuration.

The configuration is a tagged union keyed on ``actionType``; each variant
lists the sub-fields its panel collects. Every sub-field is optional so a
half-filled panel still parses, and the required-field rules live in
``ActionNode.check``.
"""

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from typing import List, Dict, Any, Optional, Literal, Union, Annotated
from .base import BaseNodeType, NodeConfig, UNCONFIGURED

RecordStatus = Literal["pending", "approved", "rejected", "in_review"]


class NotificationSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["email", "sms", "in_app", "webhook"] = "email"
    subject: Optional[str] = None
    message: Optional[str] = None
    recipient: Optional[str] = None  # "form_submitter" or "specific"
    specificEmail: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)
    recipientFieldPath: Optional[str] = None
    templateId: Optional[str] = None


class WebhookSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: Optional[str] = None
    method: Literal["GET", "POST", "PUT", "DELETE"] = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    payload: Dict[str, Any] = Field(default_factory=dict)


class FieldValue(BaseModel):
    model_config = ConfigDict(extra="allow")

    fieldId: str
    fieldName: Optional[str] = None
    fieldType: Optional[str] = None
    valueType: Literal["static", "dynamic"] = "static"
    staticValue: Any = None
    dynamicValuePath: Optional[str] = None


class FieldMapping(BaseModel):
    sourceFieldId: str
    sourceFieldName: Optional[str] = None
    targetFieldId: str
    targetFieldName: Optional[str] = None


class TargetFormConfig(NodeConfig):
    targetFormId: Optional[str] = None
    targetFormName: Optional[str] = None


class ApproveFormConfig(TargetFormConfig):
    actionType: Literal["approve_form"]
    approvalMessage: Optional[str] = None


class DisapproveFormConfig(TargetFormConfig):
    actionType: Literal["disapprove_form"]
    rejectionMessage: Optional[str] = None


class AssignFormConfig(TargetFormConfig):
    actionType: Literal["assign_form"]
    assignToUserId: Optional[str] = None
    assignToUserEmail: Optional[str] = None
    assignToFieldPath: Optional[str] = None
    assignmentConfig: Optional[Dict[str, Any]] = None


class SendNotificationConfig(NodeConfig):
    actionType: Literal["send_notification", "send_email"]
    notificationConfig: Optional[NotificationSettings] = None


class TriggerWebhookConfig(NodeConfig):
    actionType: Literal["trigger_webhook"]
    webhookConfig: Optional[WebhookSettings] = None


class ChangeFieldValueConfig(TargetFormConfig):
    actionType: Literal["change_field_value"]
    targetFieldId: Optional[str] = None
    targetFieldName: Optional[str] = None
    valueType: Optional[Literal["static", "dynamic"]] = None
    staticValue: Any = None
    dynamicValuePath: Optional[str] = None
    submissionSource: Literal["trigger", "specific"] = "trigger"
    specificSubmissionId: Optional[str] = None


class ChangeRecordStatusConfig(TargetFormConfig):
    actionType: Literal["change_record_status"]
    newStatus: Optional[RecordStatus] = None
    statusNotes: Optional[str] = None
    submissionSource: Literal["trigger", "specific"] = "trigger"
    specificSubmissionId: Optional[str] = None


class UpdateLifecycleStatusConfig(TargetFormConfig):
    actionType: Literal["update_form_lifecycle_status"]
    newStatus: Optional[str] = None


class CreateRecordConfig(TargetFormConfig):
    actionType: Literal["create_record"]
    recordCount: int = Field(default=1, ge=1)
    fieldValues: List[FieldValue] = Field(default_factory=list)
    fieldConfigMode: Literal["field_values", "field_mapping"] = "field_values"
    fieldMappings: List[FieldMapping] = Field(default_factory=list)
    setSubmittedBy: Literal["trigger_submitter", "system", "specific_user"] = "trigger_submitter"
    specificSubmitterId: Optional[str] = None
    initialStatus: Optional[RecordStatus] = None


class CreateLinkedRecordConfig(TargetFormConfig):
    actionType: Literal["create_linked_record"]
    crossReferenceFieldId: Optional[str] = None
    crossReferenceFieldName: Optional[str] = None
    recordCount: int = Field(default=1, ge=1)
    fieldValues: List[FieldValue] = Field(default_factory=list)
    fieldConfigMode: Literal["field_values", "field_mapping", "none"] = "none"
    fieldMappings: List[FieldMapping] = Field(default_factory=list)
    initialStatus: Optional[RecordStatus] = None


ActionConfig = Annotated[
    Union[
        ApproveFormConfig,
        DisapproveFormConfig,
        AssignFormConfig,
        SendNotificationConfig,
        TriggerWebhookConfig,
        ChangeFieldValueConfig,
        ChangeRecordStatusConfig,
        UpdateLifecycleStatusConfig,
        CreateRecordConfig,
        CreateLinkedRecordConfig,
    ],
    Field(discriminator="actionType"),
]

action_config_adapter = TypeAdapter(ActionConfig)

ACTION_LABELS = {
    "approve_form": "Approve Form",
    "disapprove_form": "Disapprove Form",
    "assign_form": "Assign Form",
    "send_email": "Send Email",
    "send_notification": "Send Notification",
    "trigger_webhook": "Trigger Webhook",
    "update_form_lifecycle_status": "Update Lifecycle Status",
    "change_field_value": "Change Field",
    "change_record_status": "Change Status",
    "create_record": "Create Record",
    "create_linked_record": "Create Linked Record",
}


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count > 1 else ''}"


class ActionNode(BaseNodeType):
    """Performs a side effect: assign, notify, change status, create records..."""

    NODE_TYPE = "action"
    LABEL = "Action"
    DESCRIPTION = "Perform actions like assign, notify, update status"
    PARAMS = {
        "actionType": {
            "type": "string",
            "enum": list(ACTION_LABELS),
            "description": "Kind of action performed by this node",
        },
    }

    @classmethod
    def parse_config(cls, config):
        config = config or {}
        if not config.get("actionType"):
            return NodeConfig.model_validate(config)
        return action_config_adapter.validate_python(config)

    @classmethod
    def describe(cls, parsed) -> str:
        """Best-effort summary, first populated sub-field wins."""
        action_type = getattr(parsed, "actionType", None)
        if action_type is None:
            return UNCONFIGURED
        action_label = ACTION_LABELS.get(action_type, "Action")

        form_name = getattr(parsed, "targetFormName", None)
        if form_name:
            if isinstance(parsed, UpdateLifecycleStatusConfig):
                return f"{action_label}: {form_name} → {parsed.newStatus or 'status'}"
            return f"{action_label}: {form_name}"

        if isinstance(parsed, AssignFormConfig) and parsed.assignToUserEmail:
            return f"{action_label} → {parsed.assignToUserEmail}"

        if isinstance(parsed, SendNotificationConfig):
            settings = parsed.notificationConfig
            if settings and settings.subject:
                if settings.recipient == "form_submitter":
                    recipient = "submitter"
                else:
                    recipient = settings.specificEmail or "user"
                return f"{action_label}: {settings.subject} → {recipient}"

        if isinstance(parsed, TriggerWebhookConfig):
            if parsed.webhookConfig and parsed.webhookConfig.url:
                return f"{action_label}: {parsed.webhookConfig.url}"

        if isinstance(parsed, ChangeFieldValueConfig):
            field = parsed.targetFieldName or parsed.targetFieldId or "field"
            if parsed.valueType == "static":
                value = parsed.staticValue
            elif parsed.dynamicValuePath:
                value = f"{{{parsed.dynamicValuePath}}}"
            else:
                value = "value"
            return f"Update {field} in form to {value}"

        if isinstance(parsed, ChangeRecordStatusConfig):
            return f"Change form record to {parsed.newStatus or 'status'}"

        if isinstance(parsed, CreateRecordConfig):
            text = f"Create {_plural(parsed.recordCount, 'record')} in form"
            if parsed.fieldValues:
                text += f" with {_plural(len(parsed.fieldValues), 'field')}"
            return text

        if isinstance(parsed, CreateLinkedRecordConfig):
            via = parsed.crossReferenceFieldName or "cross-reference field"
            return f"Create linked record in child form via {via}"

        return UNCONFIGURED

    @classmethod
    def check(cls, parsed):
        problems = []
        if isinstance(parsed, AssignFormConfig):
            if not parsed.targetFormId:
                problems.append("Please select a target form for assignment.")
            if not parsed.assignmentConfig:
                problems.append("Please configure assignment settings.")
        elif isinstance(parsed, ChangeFieldValueConfig):
            if not parsed.targetFormId:
                problems.append("Please select a target form")
            if not parsed.targetFieldId:
                problems.append("Please select a field to update")
            if not parsed.valueType:
                problems.append("Please select a value type")
            elif parsed.valueType == "static" and parsed.staticValue in (None, ""):
                problems.append("Please enter a static value")
            elif parsed.valueType == "dynamic" and not parsed.dynamicValuePath:
                problems.append("Please enter a dynamic value path")
            if parsed.submissionSource == "specific" and not parsed.specificSubmissionId:
                problems.append("Please enter the submission to update")
        elif isinstance(parsed, ChangeRecordStatusConfig):
            if not parsed.targetFormId:
                problems.append("Please select a target form")
            if not parsed.newStatus:
                problems.append("Please select a new status")
        elif isinstance(parsed, (CreateRecordConfig, CreateLinkedRecordConfig)):
            if not parsed.targetFormId:
                problems.append("Please select a target form")
            if isinstance(parsed, CreateLinkedRecordConfig) and not parsed.crossReferenceFieldId:
                problems.append("Please select a cross-reference field")
        elif isinstance(parsed, TriggerWebhookConfig):
            if not parsed.webhookConfig or not parsed.webhookConfig.url:
                problems.append("Please enter a webhook URL")
        elif isinstance(parsed, SendNotificationConfig):
            settings = parsed.notificationConfig
            if not settings or not (settings.subject or settings.message or settings.templateId):
                problems.append("Please configure the notification")
        elif isinstance(parsed, NodeConfig) and not getattr(parsed, "actionType", None):
            problems.append("Please select an action type")
        return problems
