"""Action types a policy can emit."""

from enum import StrEnum


class ActionType(StrEnum):
    """Closed set of side effects the automation core knows how to dispatch."""

    SEND_MESSAGE = "send_message"
    ASSIGN_AGENT = "assign_agent"
    UPDATE_CONTACT = "update_contact"
    TRIGGER_WEBHOOK = "trigger_webhook"
    ADD_LABEL = "add_label"
    UPDATE_ATTRIBUTES = "update_attributes"


class PersistKind(StrEnum):
    """Kinds of entries in an execution plan's persist map."""

    MESSAGE = "message"
    ATTRIBUTE = "attribute"
    LABEL = "label"
