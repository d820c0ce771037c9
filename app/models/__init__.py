from app.models.automation_event import AutomationEvent

__all__ = [
    "AutomationEvent",
]
