from fastapi import APIRouter

from app.api.routes import activity
from app.api.routes import applications
from app.api.routes import auth
from app.api.routes import content
from app.api.routes import cycles
from app.api.routes import files
from app.api.routes import phases
from app.api.routes import portal_events
from app.api.routes import questions
from app.api.routes import reviews
from app.api.routes import settings
from app.api.routes import slots

api_router = APIRouter()
api_router.include_router(auth.router)
api_router.include_router(cycles.router)
api_router.include_router(cycles.public_router)
api_router.include_router(questions.router)
api_router.include_router(questions.applicant_router)
api_router.include_router(applications.router)
api_router.include_router(applications.admin_router)
api_router.include_router(reviews.router)
api_router.include_router(phases.router)
api_router.include_router(slots.router)
api_router.include_router(slots.admin_router)
api_router.include_router(portal_events.router)
api_router.include_router(portal_events.admin_router)
api_router.include_router(settings.router)
api_router.include_router(settings.public_router)
api_router.include_router(settings.maintenance_router)
api_router.include_router(content.router)
api_router.include_router(content.admin_router)
api_router.include_router(files.router)
api_router.include_router(activity.router)
