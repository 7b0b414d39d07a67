from stampbot.models.budget import Budget, Expense
from stampbot.models.conversation_state import ConversationStateRow
from stampbot.models.customer import Customer
from stampbot.models.gamification import Badge, Streak
from stampbot.models.incident import IncidentReport
from stampbot.models.processed_message import ProcessedMessage
from stampbot.models.qmunity import QmunityCheckin, QmunityIssue, QmunityLocation, QmunitySpeedReport
from stampbot.models.stamp_card import MeetingRequest, SignupLead, Visit
from stampbot.models.voice_log import DeadLetter, WeeklyReflection

__all__ = [
    "Customer",
    "ConversationStateRow",
    "ProcessedMessage",
    "Streak",
    "Badge",
    "Visit",
    "SignupLead",
    "MeetingRequest",
    "IncidentReport",
    "QmunityLocation",
    "QmunityCheckin",
    "QmunitySpeedReport",
    "QmunityIssue",
    "Budget",
    "Expense",
    "WeeklyReflection",
    "DeadLetter",
]
