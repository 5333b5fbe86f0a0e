"""FastAPI API endpoints under /api.

Endpoint groups: settings (health, config, check-connection), contacts and
profile, world book and restricted terms, and chat (messages, regenerate,
status, events). Per-contact chat resources are nested under
/api/contacts/{contact_id}/.
"""

from fastapi import APIRouter

from .chat import router as chat_router
from .contacts import router as contacts_router
from .lorebook import router as lorebook_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(contacts_router)
router.include_router(lorebook_router)
router.include_router(chat_router)
