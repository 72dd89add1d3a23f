from app.models.activity import RecActivityEvent
from app.models.application import RecApplication
from app.models.content import RecContentRecord
from app.models.cycle import RecCycle
from app.models.phase import RecPhaseConfig, RecPhaseDecision, RecPhaseRanking
from app.models.portal_event import RecEventRsvp, RecPortalEvent
from app.models.question import RecQuestionSet
from app.models.review import RecReview
from app.models.site_setting import SiteSetting
from app.models.slot import RecSlot, RecSlotBooking

__all__ = [
    "RecActivityEvent",
    "RecApplication",
    "RecContentRecord",
    "RecCycle",
    "RecEventRsvp",
    "RecPhaseConfig",
    "RecPhaseDecision",
    "RecPhaseRanking",
    "RecPortalEvent",
    "RecQuestionSet",
    "RecReview",
    "RecSlot",
    "RecSlotBooking",
    "SiteSetting",
]
