from stampbot.flows.base import FlowContext, FlowHandler, FlowServices
from stampbot.flows.budget import BudgetFlow
from stampbot.flows.demo import DemoFlow
from stampbot.flows.edu import EduFlow
from stampbot.flows.incident import IncidentFlow
from stampbot.flows.meeting import MeetingFlow
from stampbot.flows.menu import MenuFlow
from stampbot.flows.queue import QueueFlow
from stampbot.flows.signup import SignupFlow
from stampbot.flows.voice_log import VoiceLogFlow


def default_handlers() -> list[FlowHandler]:
    """Registration order decides who gets first claim on media and replies."""
    return [
        VoiceLogFlow(),
        IncidentFlow(),
        SignupFlow(),
        BudgetFlow(),
        QueueFlow(),
        MeetingFlow(),
        DemoFlow(),
        MenuFlow(),
        EduFlow(),
    ]


__all__ = [
    "BudgetFlow",
    "DemoFlow",
    "EduFlow",
    "FlowContext",
    "FlowHandler",
    "FlowServices",
    "IncidentFlow",
    "MeetingFlow",
    "MenuFlow",
    "QueueFlow",
    "SignupFlow",
    "VoiceLogFlow",
    "default_handlers",
]
