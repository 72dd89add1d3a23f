from typing import List, Optional

from pydantic import BaseModel

from app.schemas.application import ApplicationOut
from app.schemas.cycle import CycleOut
from app.schemas.portal_event import PortalEventOut, RsvpOut
from app.schemas.question import QuestionSetOut
from app.schemas.slot import BookingOut, SlotOut


class PortalDashboard(BaseModel):
    active_cycle: Optional[CycleOut] = None
    application: Optional[ApplicationOut] = None
    questions: List[QuestionSetOut] = []
    available_slots: List[SlotOut] = []
    my_bookings: List[BookingOut] = []
    upcoming_events: List[PortalEventOut] = []
    my_rsvps: List[RsvpOut] = []
