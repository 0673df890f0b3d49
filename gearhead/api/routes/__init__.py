# API Routes Module
from gearhead.api.routes import (
    chat,
    upload,
    ai_jobs,
    auth,
)

__all__ = [
    "chat",
    "upload",
    "ai_jobs",
    "auth",
]
