import unittest
from formflow.node_registry import registry
from formflow.nodes.base import UNCONFIGURED
from formflow.nodes.actions import ActionNode
from formflow.nodes.control_flow import ConditionNode, WaitNode
from formflow.nodes.general import StartNode, EndNode
from formflow.nodes.human import ApprovalNode
from formflow.schemas import WorkflowNode, NodeData


def make_node(node_type, config=None, node_id="n1"):
    return WorkflowNode(id=node_id, type=node_type, label="Node", data=NodeData(config=config or {}))


class TestNodeRegistry(unittest.TestCase):
    def test_palette_order(self):
        types = [m.type for m in registry.get_all_metadata()]
        self.assertEqual(types, ["start", "action", "approval", "condition", "wait", "end"])

    def test_metadata(self):
        meta = {m.type: m for m in registry.get_all_metadata()}
        self.assertEqual(meta["start"].inputs, [])
        self.assertEqual(meta["end"].outputs, [])
        self.assertEqual(meta["condition"].outputs, ["true", "false"])
        self.assertIn("waitUnit", meta["wait"].params)

    def test_default_labels(self):
        self.assertEqual(StartNode.default_label(), "Start Node")
        self.assertEqual(ActionNode.default_label(), "Action Node")
        self.assertEqual(EndNode.default_label(), "End Node")

    def test_unknown_type(self):
        self.assertIsNone(registry.get_node_class("loop"))


class TestSummaries(unittest.TestCase):
    def test_unconfigured(self):
        for node_type in ("start", "action", "condition", "wait"):
            self.assertEqual(registry.summarize(make_node(node_type)), UNCONFIGURED)

    def test_start(self):
        node = make_node("start", {"triggerFormId": "f1", "triggerFormName": "Intake"})
        self.assertEqual(registry.summarize(node), "Form Submission: Intake")
        self.assertEqual(registry.summarize(make_node("start", {"triggerType": "manual"})), "Manual")

    def test_action_target_form_first(self):
        config = {"actionType": "assign_form", "targetFormName": "Leave Request", "assignToUserEmail": "a@b.c"}
        self.assertEqual(ActionNode.summarize(config), "Assign Form: Leave Request")

    def test_action_assign_email(self):
        config = {"actionType": "assign_form", "assignToUserEmail": "a@b.c"}
        self.assertEqual(ActionNode.summarize(config), "Assign Form → a@b.c")

    def test_action_lifecycle(self):
        config = {"actionType": "update_form_lifecycle_status", "targetFormName": "Orders", "newStatus": "closed"}
        self.assertEqual(ActionNode.summarize(config), "Update Lifecycle Status: Orders → closed")

    def test_action_notification(self):
        config = {
            "actionType": "send_notification",
            "notificationConfig": {"subject": "Hello", "recipient": "form_submitter"},
        }
        self.assertEqual(ActionNode.summarize(config), "Send Notification: Hello → submitter")
        config["notificationConfig"] = {"subject": "Hi", "recipient": "specific", "specificEmail": "x@y.z"}
        self.assertEqual(ActionNode.summarize(config), "Send Notification: Hi → x@y.z")

    def test_action_change_field(self):
        config = {
            "actionType": "change_field_value",
            "targetFieldName": "Status",
            "valueType": "static",
            "staticValue": "Done",
        }
        self.assertEqual(ActionNode.summarize(config), "Update Status in form to Done")
        config = {"actionType": "change_field_value", "targetFieldId": "fld", "valueType": "dynamic",
                  "dynamicValuePath": "trigger.amount"}
        self.assertEqual(ActionNode.summarize(config), "Update fld in form to {trigger.amount}")

    def test_action_create_record(self):
        config = {"actionType": "create_record", "recordCount": 3, "fieldValues": [{"fieldId": "a"}]}
        self.assertEqual(ActionNode.summarize(config), "Create 3 records in form with 1 field")

    def test_action_unknown_type(self):
        self.assertEqual(ActionNode.summarize({"actionType": "launch_rocket"}), UNCONFIGURED)

    def test_approval(self):
        node = make_node("approval", {"approvalAction": "disapprove", "targetFormName": "Expenses"})
        self.assertEqual(registry.summarize(node), "Disapprove submissions for Expenses")

    def test_condition_form_level(self):
        config = {
            "enhancedCondition": {
                "systemType": "form_level",
                "formLevelCondition": {"conditionType": "form_status", "operator": "==", "value": "approved"},
            }
        }
        self.assertEqual(ConditionNode.summarize(config), "form_status == approved")

    def test_condition_switch(self):
        config = {"conditionConfig": {"type": "switch", "field": {"path": "priority"},
                                      "cases": [{"value": "high"}, {"value": "low"}]}}
        self.assertEqual(ConditionNode.summarize(config), "Switch priority (2 cases)")

    def test_wait(self):
        self.assertEqual(WaitNode.summarize({"waitDuration": 1, "waitUnit": "days"}), "Wait 1 day")
        self.assertEqual(WaitNode.summarize({"waitDuration": 4, "waitUnit": "hours"}), "Wait 4 hours")
        self.assertEqual(WaitNode.summarize({"waitForCompletion": True}), "Wait for completion")

    def test_end(self):
        self.assertEqual(registry.summarize(make_node("end")), "Workflow complete")


class TestValidation(unittest.TestCase):
    def test_action_requires_type(self):
        self.assertEqual(ActionNode.validate_config({}), ["Please select an action type"])

    def test_assign_form_rules(self):
        problems = ActionNode.validate_config({"actionType": "assign_form"})
        self.assertIn("Please select a target form for assignment.", problems)
        self.assertIn("Please configure assignment settings.", problems)
        ok = {"actionType": "assign_form", "targetFormId": "f1", "assignmentConfig": {"mode": "user"}}
        self.assertEqual(ActionNode.validate_config(ok), [])

    def test_change_field_value_rules(self):
        problems = ActionNode.validate_config({"actionType": "change_field_value", "targetFormId": "f1",
                                               "targetFieldId": "x", "valueType": "static"})
        self.assertEqual(problems, ["Please enter a static value"])
        problems = ActionNode.validate_config({"actionType": "change_field_value"})
        self.assertIn("Please select a value type", problems)

    def test_change_record_status_rules(self):
        problems = ActionNode.validate_config({"actionType": "change_record_status", "targetFormId": "f1"})
        self.assertEqual(problems, ["Please select a new status"])

    def test_invalid_enum_is_reported(self):
        problems = ActionNode.validate_config({"actionType": "change_record_status", "newStatus": "lost"})
        self.assertEqual(len(problems), 1)
        self.assertIn("newStatus", problems[0])

    def test_wait_rules(self):
        self.assertEqual(WaitNode.validate_config({}), ["Please enter a wait duration"])
        self.assertEqual(WaitNode.validate_config({"waitDuration": 5}), [])
        self.assertTrue(WaitNode.validate_config({"waitDuration": -1}))

    def test_start_and_approval_need_a_form(self):
        self.assertTrue(StartNode.validate_config({}))
        self.assertEqual(StartNode.validate_config({"triggerType": "manual"}), [])
        self.assertEqual(ApprovalNode.validate_config({"targetFormId": "f1"}), [])

    def test_condition_rules(self):
        self.assertEqual(ConditionNode.validate_config({}), ["Please configure a condition"])
        config = {"conditionConfig": {"type": "switch", "cases": [{"value": "a"}, {"value": "a"}]}}
        self.assertEqual(ConditionNode.validate_config(config), ["Switch case values must be unique"])


class TestOutputPorts(unittest.TestCase):
    def test_simple_nodes(self):
        self.assertEqual(registry.output_ports(make_node("start")), [None])
        self.assertEqual(registry.output_ports(make_node("wait")), [None])
        self.assertEqual(registry.output_ports(make_node("end")), [])

    def test_condition_ports(self):
        self.assertEqual(registry.output_ports(make_node("condition")), ["true", "false"])
        config = {"conditionConfig": {"type": "switch", "cases": [{"value": "high"}, {"value": "low"}],
                                      "defaultPath": "n9"}}
        self.assertEqual(registry.output_ports(make_node("condition", config)), ["high", "low", "default"])

    def test_malformed_condition_config_falls_back(self):
        for config in ({"conditionConfig": "switch"},
                       {"conditionConfig": {"type": "switch", "cases": ["high"]}},
                       {"conditionConfig": {"type": "switch", "cases": "high"}}):
            self.assertEqual(registry.output_ports(make_node("condition", config)), ["true", "false"])

    def test_numeric_switch_cases_become_handles(self):
        config = {"conditionConfig": {"type": "switch", "cases": [{"value": 1}, {"value": 2.5}]}}
        self.assertEqual(registry.output_ports(make_node("condition", config)), ["1", "2.5"])


if __name__ == '__main__':
    unittest.main()
