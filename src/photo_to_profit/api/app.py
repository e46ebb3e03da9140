from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from photo_to_profit.config import settings
from photo_to_profit.errors import (
    Busy,
    MalformedResponse,
    NoOp,
    NothingToSave,
    NotFound,
    PersistenceError,
    PhotoToProfitError,
    RemoteFailure,
)
from photo_to_profit.gallery import GalleryStore
from photo_to_profit.models import Condition, ImageVersion, ListingInsights, SavedProduct
from photo_to_profit.providers.gemini_provider import GeminiProvider
from photo_to_profit.session import SessionController

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="photo_to_profit")

store = GalleryStore()
store.load_all()

_session: SessionController | None = None

_STATUS_BY_ERROR: dict[type[PhotoToProfitError], int] = {
    NoOp: 409,
    NothingToSave: 409,
    Busy: 429,
    NotFound: 404,
    RemoteFailure: 502,
    MalformedResponse: 502,
    PersistenceError: 500,
}


def _get_gemini() -> GeminiProvider:
    if not settings.gemini_api_key:
        raise HTTPException(status_code=400, detail="GEMINI_API_KEY is not set")
    return GeminiProvider(api_key=settings.gemini_api_key)


class _DeferredGemini:
    """Builds the Gemini provider on the first AI call, so gallery-only routes work without a key."""

    name = "gemini"

    def __init__(self) -> None:
        self._provider: GeminiProvider | None = None

    def _get(self) -> GeminiProvider:
        if self._provider is None:
            self._provider = _get_gemini()
        return self._provider

    async def remove_background(self, image: ImageVersion) -> ImageVersion:
        return await self._get().remove_background(image)

    async def replace_background(self, image: ImageVersion, scene_description: str) -> ImageVersion:
        return await self._get().replace_background(image, scene_description)

    async def generate_listing(self, image: ImageVersion, condition: Condition, hint: str) -> ListingInsights:
        return await self._get().generate_listing(image, condition, hint)


def get_store() -> GalleryStore:
    return store


def get_session() -> SessionController:
    global _session
    if _session is None:
        _session = SessionController(provider=_DeferredGemini(), gallery=store)
    return _session


@app.exception_handler(PhotoToProfitError)
async def _domain_error(request: Request, exc: PhotoToProfitError) -> JSONResponse:
    status = next((code for kind, code in _STATUS_BY_ERROR.items() if isinstance(exc, kind)), 500)
    return JSONResponse(status_code=status, content={"detail": str(exc) or type(exc).__name__})


def _product_summary(product: SavedProduct) -> dict[str, Any]:
    return {
        "id": product.id,
        "title": product.insights.title,
        "recommended_price": product.insights.pricing_guidance.recommended_price,
        "mime_type": product.current_image.mime_type,
    }


def _session_state(session: SessionController) -> dict[str, Any]:
    history = session.history
    insights = session.insights.last_insights
    return {
        "view": session.view.value,
        "history": {
            "length": len(history),
            "cursor": history.cursor,
            "can_undo": history.can_undo,
            "can_redo": history.can_redo,
        },
        "busy": session.busy,
        "edit_error": session.edit_error,
        "product_id": session.product_id,
        "confirmation": session.confirmation,
        "insights": {
            "status": session.insights.status.value,
            "error": session.insights.error,
            "value": insights.to_dict() if insights else None,
        },
    }


def _image_response(image: ImageVersion | None) -> Response:
    if image is None:
        raise HTTPException(status_code=404, detail="no image loaded")
    return Response(content=image.data, media_type=image.mime_type)


@app.get("/session")
async def session_state(session: SessionController = Depends(get_session)):
    return _session_state(session)


@app.get("/session/image")
async def session_image(session: SessionController = Depends(get_session)):
    return _image_response(session.current_image)


@app.get("/session/original")
async def session_original(session: SessionController = Depends(get_session)):
    return _image_response(session.original_image)


@app.post("/session/upload")
async def upload_image(
    file: UploadFile = File(...),
    session: SessionController = Depends(get_session),
):
    content = await file.read()
    try:
        image = ImageVersion.from_upload(content, file.content_type)
    except ValueError as exc:
        logger.info("Rejected upload %s: %s", file.filename, exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    await session.upload(image)
    return _session_state(session)


@app.post("/session/remove-background")
async def remove_background(session: SessionController = Depends(get_session)):
    await session.remove_background()
    return _session_state(session)


@app.post("/session/background")
async def replace_background(
    prompt: str = Form(...),
    session: SessionController = Depends(get_session),
):
    try:
        await session.apply_background_edit(prompt)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _session_state(session)


@app.post("/session/undo")
async def undo(session: SessionController = Depends(get_session)):
    session.undo()
    return _session_state(session)


@app.post("/session/redo")
async def redo(session: SessionController = Depends(get_session)):
    session.redo()
    return _session_state(session)


@app.post("/session/refine")
async def refine(
    condition: str = Form("Used"),
    hint: str = Form(""),
    session: SessionController = Depends(get_session),
):
    try:
        parsed = Condition(condition)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="condition must be 'New' or 'Used'") from exc
    await session.refine(parsed, hint)
    return _session_state(session)


@app.post("/session/save")
async def save(session: SessionController = Depends(get_session)):
    product = session.save()
    return {"product": _product_summary(product), "session": _session_state(session)}


@app.get("/session/share", response_class=PlainTextResponse)
async def share_text(session: SessionController = Depends(get_session)):
    return session.share_text()


@app.post("/session/new")
async def new_listing(session: SessionController = Depends(get_session)):
    session.new_listing()
    return _session_state(session)


@app.post("/session/gallery")
async def show_gallery(session: SessionController = Depends(get_session)):
    session.show_gallery()
    return _session_state(session)


@app.post("/session/resume")
async def resume_editing(session: SessionController = Depends(get_session)):
    session.resume_editing()
    return _session_state(session)


@app.get("/gallery")
async def list_gallery(gallery: GalleryStore = Depends(get_store)):
    return {"products": [_product_summary(p) for p in gallery.products]}


@app.get("/gallery/{product_id}/image")
async def gallery_image(product_id: str, gallery: GalleryStore = Depends(get_store)):
    return _image_response(gallery.find_by_id(product_id).current_image)


@app.post("/gallery/{product_id}/open")
async def open_product(product_id: str, session: SessionController = Depends(get_session)):
    session.open_product(product_id)
    return _session_state(session)


@app.delete("/gallery/{product_id}")
async def delete_product(product_id: str, session: SessionController = Depends(get_session)):
    removed = session.delete_product(product_id)
    return {"removed": removed, "session": _session_state(session)}
