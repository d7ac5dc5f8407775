from fastapi import APIRouter

from picturebook.api.v1.routes.admin_stories import router as admin_stories_router
from picturebook.api.v1.routes.books import router as books_router
from picturebook.api.v1.routes.characters import admin_router as admin_characters_router
from picturebook.api.v1.routes.characters import router as characters_router
from picturebook.api.v1.routes.prop_bible import router as prop_bible_router
from picturebook.api.v1.routes.storyboard import router as storyboard_router
from picturebook.api.v1.routes.storyboard_panels import router as storyboard_panels_router

api_router = APIRouter()
api_router.include_router(admin_stories_router, prefix="/admin/stories", tags=["admin"])
api_router.include_router(prop_bible_router, prefix="/admin/prop-bible", tags=["admin"])
api_router.include_router(storyboard_router, prefix="/admin/storyboard", tags=["admin"])
api_router.include_router(admin_characters_router, prefix="/admin/characters", tags=["admin"])
api_router.include_router(characters_router, tags=["characters"])
api_router.include_router(books_router, tags=["books"])
api_router.include_router(storyboard_panels_router, prefix="/storyboard-panels", tags=["storyboard"])
