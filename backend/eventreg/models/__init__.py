from eventreg.models.event import Event
from eventreg.models.registration import Registration, RegistrationStatus
from eventreg.models.ledger import CapacityLedger
from eventreg.models.notification import EventNotification

__all__ = ["Event", "Registration", "RegistrationStatus", "CapacityLedger", "EventNotification"]
