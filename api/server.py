"""FastAPI server for the virtual try-on canvas.

Each try-on view in the browser maps to a server-side session holding one
`TryOnController`. The browser:
- uploads a photo (base64 data URL) or reuses the stored profile photo
- picks a clothing item from the catalog
- adjusts scale / vertical / horizontal placement
- saves the look to its history

Previews come back as base64 PNG together with the processing state.
"""

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.middleware.base import BaseHTTPMiddleware

from tryon_mvp import __version__
from tryon_mvp.config import TryOnConfig, load_config
from tryon_mvp.errors import (
    AuthError,
    InvalidImage,
    ModelUnavailable,
    NotFound,
    StorageError,
    TryOnError,
)
from tryon_mvp.models import (
    PLACEHOLDER_MESSAGE,
    ClothingItem,
    HistoryRecord,
    PlacementParameters,
    UserProfile,
    categories,
    filter_by_category,
)
from tryon_mvp.pipeline import TryOnController
from tryon_mvp.services import (
    AuthService,
    CatalogStore,
    ClothingImageLoader,
    HistoryStore,
    PersistenceGateway,
    PersonSegmenter,
    PhotoStore,
    S3BlobStore,
    create_supabase_client,
)
from tryon_mvp.utils import decode_data_url, decode_image, encode_png, to_data_url


MAX_SESSIONS = 200

logger = logging.getLogger("api.server")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all requests with timing information."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = f"{process_time:.3f}"
        logger.info(
            "%s %s - %d - %.3fs",
            request.method, request.url.path, response.status_code, process_time,
        )
        return response


async def _warm_up_model() -> None:
    try:
        await get_segmenter().load()
    except ModelUnavailable as e:
        logger.error("Segmentation model unavailable at startup: %s", e)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start loading the segmentation model in the background; release it on shutdown."""
    global _warm_up_task
    if get_config().segmentation.preload:
        _warm_up_task = asyncio.create_task(_warm_up_model())

    yield

    if _warm_up_task is not None and not _warm_up_task.done():
        _warm_up_task.cancel()
    for controller in _sessions.values():
        controller.close()
    _sessions.clear()
    if _segmenter is not None:
        _segmenter.release()
    if _clothing_loader is not None:
        await _clothing_loader.close()


app = FastAPI(
    title="Try-On Canvas API",
    description="Virtual clothing try-on: person segmentation and clothing compositing",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# SERVICES (created on first use)
# ============================================================================

_config: TryOnConfig | None = None
_segmenter: PersonSegmenter | None = None
_clothing_loader: ClothingImageLoader | None = None
_blobs: S3BlobStore | None = None
_catalog: CatalogStore | None = None
_photos: PhotoStore | None = None
_history: HistoryStore | None = None
_auth: AuthService | None = None
_sessions: OrderedDict[str, TryOnController] = OrderedDict()
_warm_up_task: asyncio.Task | None = None


def get_config() -> TryOnConfig:
    global _config
    if _config is None:
        _config = load_config()  # Loads from .env automatically via pydantic-settings
    return _config


def get_segmenter() -> PersonSegmenter:
    """The process-wide segmentation model (shared by all sessions)."""
    global _segmenter
    if _segmenter is None:
        _segmenter = PersonSegmenter(get_config().segmentation)
    return _segmenter


def get_clothing_loader() -> ClothingImageLoader:
    global _clothing_loader
    if _clothing_loader is None:
        images = get_config().images
        static_dir = Path(images.static_dir) if images.static_dir else None
        _clothing_loader = ClothingImageLoader(images, static_dir=static_dir)
    return _clothing_loader


def get_blob_store() -> S3BlobStore:
    global _blobs
    if _blobs is None:
        _blobs = S3BlobStore(get_config().s3)
    return _blobs


def get_catalog() -> CatalogStore:
    global _catalog
    if _catalog is None:
        config = get_config().supabase
        client = create_supabase_client(config, admin=True)
        _catalog = CatalogStore(client, get_blob_store(), table=config.clothing_table)
    return _catalog


def get_photo_store() -> PhotoStore:
    global _photos
    if _photos is None:
        _photos = PhotoStore(get_blob_store())
    return _photos


def get_history() -> HistoryStore:
    global _history
    if _history is None:
        config = get_config().supabase
        client = create_supabase_client(config, admin=True)
        _history = HistoryStore(client, get_blob_store(), table=config.history_table)
    return _history


def get_gateway() -> PersistenceGateway:
    return PersistenceGateway(get_history())


def get_auth() -> AuthService:
    global _auth
    if _auth is None:
        config = get_config().supabase
        admin_client = create_supabase_client(config, admin=True) if config.service_role_key else None
        _auth = AuthService(create_supabase_client(config), admin_client)
    return _auth


def get_session(session_id: str) -> TryOnController:
    controller = _sessions.get(session_id)
    if controller is None:
        raise NotFound(f"Try-on session not found: {session_id}")
    _sessions.move_to_end(session_id)
    return controller


configure_logging(get_config().log_level)



# ============================================================================
# ERROR HANDLERS
# ============================================================================

ERROR_STATUS = {
    AuthError: 401,
    NotFound: 404,
    InvalidImage: 400,
    StorageError: 502,
    ModelUnavailable: 503,
}


def _error_response(status_code: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error, "message": message},
    )


@app.exception_handler(TryOnError)
async def tryon_error_handler(request: Request, exc: TryOnError):
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        500,
    )
    logger.warning("%s on %s: %s", exc.__class__.__name__, request.url.path, exc)
    return _error_response(status_code, exc.__class__.__name__, str(exc))


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning("Bad request on %s: %s", request.url.path, exc)
    return _error_response(400, "ValueError", str(exc))


# ============================================================================
# AUTH DEPENDENCIES
# ============================================================================

def _bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("Authorization")
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def require_user(request: Request) -> UserProfile:
    user = await get_auth().current_user(_bearer_token(request))
    if user is None:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def require_admin(user: UserProfile = Depends(require_user)) -> UserProfile:
    admins = [email.lower() for email in get_config().admin_emails]
    if admins and (user.email or "").lower() not in admins:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


# ============================================================================
# REQUEST / RESPONSE MODELS
# ============================================================================

class PhotoRequest(BaseModel):
    """Request body carrying a photo."""
    photo: str  # Base64 data URL


class ClothingSelection(BaseModel):
    clothing_id: str | None = None  # None removes the overlay


class PlacementUpdate(BaseModel):
    scale: float | None = None
    offset_y: float | None = None
    offset_x: float | None = None


class NewClothingRequest(BaseModel):
    name: str
    category: str
    image: str  # Base64 data URL
    filename: str = "image.png"


class Credentials(BaseModel):
    email: str
    password: str
    display_name: str | None = None


class SessionResponse(BaseModel):
    """Current state of a try-on session."""
    success: bool = True
    session_id: str
    state: str
    stage: str
    is_processing: bool
    image_base64: str | None = None
    message: str | None = None
    error: str | None = None
    clothing_id: str | None = None
    placement: PlacementParameters = Field(default_factory=PlacementParameters)


class CatalogResponse(BaseModel):
    success: bool = True
    items: list[ClothingItem]
    categories: list[str]


async def _session_response(session_id: str, controller: TryOnController) -> SessionResponse:
    preview = controller.preview
    image_base64 = None
    if preview.image is not None:
        image_base64 = to_data_url(await asyncio.to_thread(encode_png, preview.image))

    return SessionResponse(
        success=controller.error is None,
        session_id=session_id,
        state=controller.state.value,
        stage=preview.stage.value,
        is_processing=controller.is_processing,
        image_base64=image_base64,
        message=PLACEHOLDER_MESSAGE if preview.is_placeholder else None,
        error=controller.error,
        clothing_id=controller.clothing_item.id if controller.clothing_item else None,
        placement=controller.placement,
    )


def _decode_upload(data: str):
    images = get_config().images
    return decode_image(decode_data_url(data), images.max_dimension, images.max_upload_bytes)


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "Try-On Canvas API", "version": __version__}


@app.get("/health")
async def health():
    """Detailed health check."""
    segmenter = get_segmenter()
    return {
        "status": "ok" if segmenter.is_ready else "degraded",
        "segmentation_model": segmenter.status.value,
        "sessions": len(_sessions),
    }


# ============================================================================
# TRY-ON SESSIONS
# ============================================================================

@app.post("/api/sessions", response_model=SessionResponse)
async def create_session():
    """Open a try-on view."""
    session_id = uuid.uuid4().hex
    controller = TryOnController(get_segmenter(), get_clothing_loader())
    _sessions[session_id] = controller
    while len(_sessions) > MAX_SESSIONS:
        _, evicted = _sessions.popitem(last=False)
        evicted.close()
    return await _session_response(session_id, controller)


@app.get("/api/sessions/{session_id}", response_model=SessionResponse)
async def get_session_state(session_id: str):
    return await _session_response(session_id, get_session(session_id))


@app.post("/api/sessions/{session_id}/photo", response_model=SessionResponse)
async def submit_photo(session_id: str, request: PhotoRequest):
    """Segment a new photo (and recomposite if clothing is selected)."""
    controller = get_session(session_id)
    image = await asyncio.to_thread(_decode_upload, request.photo)
    await controller.submit_photo(image)
    await controller.attach_model()
    return await _session_response(session_id, controller)


@app.post("/api/sessions/{session_id}/photo/stored", response_model=SessionResponse)
async def submit_stored_photo(session_id: str, user: UserProfile = Depends(require_user)):
    """Use the signed-in user's saved profile photo."""
    controller = get_session(session_id)
    data = await get_photo_store().read_user_photo(user.id)
    images = get_config().images
    image = await asyncio.to_thread(decode_image, data, images.max_dimension, images.max_upload_bytes)
    await controller.submit_photo(image)
    await controller.attach_model()
    return await _session_response(session_id, controller)


@app.put("/api/sessions/{session_id}/clothing", response_model=SessionResponse)
async def select_clothing(session_id: str, request: ClothingSelection):
    controller = get_session(session_id)
    item = None
    if request.clothing_id is not None:
        item = await get_catalog().get_clothing_item(request.clothing_id)
    await controller.select_clothing(item)
    return await _session_response(session_id, controller)


@app.patch("/api/sessions/{session_id}/placement", response_model=SessionResponse)
async def adjust_placement(session_id: str, request: PlacementUpdate):
    controller = get_session(session_id)
    changes = request.model_dump(exclude_none=True)
    await controller.adjust_placement(**changes)
    return await _session_response(session_id, controller)


@app.post("/api/sessions/{session_id}/save", response_model=HistoryRecord)
async def save_look(session_id: str, user: UserProfile = Depends(require_user)):
    """Save the current composite to the user's history."""
    controller = get_session(session_id)
    return await get_gateway().save_look(user.id, controller.clothing_item, controller.combined_image)


@app.delete("/api/sessions/{session_id}")
async def close_session(session_id: str):
    controller = _sessions.pop(session_id, None)
    if controller is None:
        raise NotFound(f"Try-on session not found: {session_id}")
    controller.close()
    return {"success": True}


# ============================================================================
# CATALOG
# ============================================================================

@app.get("/api/clothing", response_model=CatalogResponse)
async def list_clothing(category: str | None = None):
    items = await get_catalog().list_clothing_items()
    return CatalogResponse(items=filter_by_category(items, category), categories=categories(items))


@app.post("/api/clothing", response_model=ClothingItem)
async def create_clothing(request: NewClothingRequest, admin: UserProfile = Depends(require_admin)):
    image_bytes = decode_data_url(request.image)
    # Reject anything that is not a decodable image before it is stored
    images = get_config().images
    await asyncio.to_thread(decode_image, image_bytes, None, images.max_upload_bytes)
    return await get_catalog().create_clothing_item(
        request.name, request.category, image_bytes, request.filename,
    )


@app.delete("/api/clothing/{item_id}")
async def delete_clothing(item_id: str, admin: UserProfile = Depends(require_admin)):
    catalog = get_catalog()
    item = await catalog.get_clothing_item(item_id)
    await catalog.delete_clothing_item(item_id)
    get_clothing_loader().forget(item.image_url)
    return {"success": True}


# ============================================================================
# USER PHOTO & HISTORY
# ============================================================================

@app.put("/api/me/photo")
async def store_photo(request: PhotoRequest, user: UserProfile = Depends(require_user)):
    data = decode_data_url(request.photo)
    images = get_config().images
    await asyncio.to_thread(decode_image, data, None, images.max_upload_bytes)
    url = await get_photo_store().store_user_photo(user.id, data)
    return {"success": True, "url": url}


@app.get("/api/me/photo")
async def get_photo(user: UserProfile = Depends(require_user)):
    url = await get_photo_store().get_user_photo(user.id)
    return {"success": True, "url": url}


@app.get("/api/history", response_model=list[HistoryRecord])
async def list_history(user: UserProfile = Depends(require_user)):
    return await get_history().list_try_on_history(user.id)


# ============================================================================
# AUTH
# ============================================================================

@app.post("/api/auth/signup")
async def signup(request: Credentials):
    session = await get_auth().signup(request.email, request.password, request.display_name)
    return session.model_dump()


@app.post("/api/auth/login")
async def login(request: Credentials):
    session = await get_auth().login(request.email, request.password)
    return session.model_dump()


@app.post("/api/auth/logout")
async def logout(request: Request):
    token = _bearer_token(request)
    if token is None:
        raise AuthError("Missing bearer token")
    await get_auth().logout(token)
    return {"success": True}


@app.get("/api/auth/me", response_model=UserProfile)
async def me(user: UserProfile = Depends(require_user)):
    return user


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
