"""FastAPI application and routes."""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException, Query, UploadFile, File, Form, Body
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel

from uma_engine import __version__
from uma_engine.config import ConfigLoader, ConfigLoadError, SystemConfig
from uma_engine.services.build_cards import (
    BuildCardExporter,
    BuildCardImporter,
    BuildInvariantManager,
    CorpusLoadError,
    HorseState,
    IdentifierResolver,
    PNGFormatError,
    PortraitNotFoundError,
    SkillCorpus,
    validate_build,
)
from uma_engine.services.vision_service import (
    ScreenshotVisionService,
    VisionBusyError,
    VisionRequestError,
    VisionResponseError,
    VisionServiceError,
    ImageProcessingError,
)

logger = logging.getLogger(__name__)


# Global state
app_state: Dict[str, Any] = {
    "system_config": None,
    "corpus": None,
    "resolver": None,
    "manager": None,
    "importer": None,
    "exporter": None,
    "vision_service": None,
}


def init_services(
    config: SystemConfig,
    corpus: Optional[SkillCorpus],
    vision_service: Optional[ScreenshotVisionService] = None,
) -> None:
    """Wire services into app_state. Build services stay None without a corpus."""
    app_state["system_config"] = config
    app_state["corpus"] = corpus
    app_state["vision_service"] = vision_service

    if corpus is None:
        for key in ("resolver", "manager", "importer", "exporter"):
            app_state[key] = None
        return

    resolver = IdentifierResolver(corpus)
    manager = BuildInvariantManager(corpus, resolver)
    app_state["resolver"] = resolver
    app_state["manager"] = manager
    app_state["importer"] = BuildCardImporter(corpus, manager, keyword=config.card.keyword)
    app_state["exporter"] = BuildCardExporter(
        corpus,
        str(config.paths.portraits),
        keyword=config.card.keyword,
        version=config.card.version,
        default_outfit_id=config.card.default_outfit,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load configuration and corpus on startup."""
    loader = ConfigLoader()
    try:
        config = loader.load_system_config()
    except ConfigLoadError as e:
        logger.error(f"Failed to load system config, using defaults: {e}")
        config = SystemConfig()

    corpus = None
    try:
        corpus = SkillCorpus.from_directory(loader.resolve_path(config.paths.corpus))
    except CorpusLoadError as e:
        logger.error(f"Corpus unavailable, build endpoints disabled: {e}")

    vision_service = ScreenshotVisionService(config.vision) if config.vision.enabled else None
    init_services(config, corpus, vision_service)
    logger.info("Uma Engine API ready")

    yield

    if app_state["vision_service"] is not None:
        await app_state["vision_service"].close()


app = FastAPI(
    title="Uma Engine",
    description="Horse build import/export: JSON, uma card PNGs and screenshot OCR",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request / response models

class HealthResponse(BaseModel):
    status: str
    version: str
    corpus_loaded: bool
    vision_enabled: bool


class BuildResponse(BaseModel):
    horse: Dict[str, Any]
    source: Optional[str] = None


class OutfitChangeRequest(BaseModel):
    horse: Dict[str, Any]
    outfit_id: str = ""


class ForcedPositionRequest(BaseModel):
    horse: Dict[str, Any]
    skill_id: str
    value: Union[float, str, None] = None


class OCRBuildResponse(BaseModel):
    horse: Dict[str, Any]
    ocr: Dict[str, Any]


# Helpers

def _require(key: str):
    service = app_state.get(key)
    if service is None:
        raise HTTPException(status_code=503, detail="Skill corpus not loaded")
    return service


def _parse_horse(blob: Any) -> HorseState:
    """Validate an untrusted request body into a normalized build."""
    corpus = _require("corpus")
    manager: BuildInvariantManager = _require("manager")
    horse = validate_build(blob, corpus)
    if horse is None:
        raise HTTPException(status_code=400, detail="Not a recognized horse build")
    return manager.normalize_record(horse)


def _download(content: bytes, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# Routes

@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check."""
    return HealthResponse(
        status="ok",
        version=__version__,
        corpus_loaded=app_state["corpus"] is not None,
        vision_enabled=app_state["vision_service"] is not None,
    )


@app.post("/builds/validate", response_model=BuildResponse)
async def validate_build_route(blob: Any = Body(...)):
    """Validate a build object and return its normalized form."""
    horse = _parse_horse(blob)
    return BuildResponse(horse=horse.to_json_dict())


@app.post("/builds/import", response_model=BuildResponse)
async def import_build(file: UploadFile = File(...)):
    """Import a build from a JSON file or an uma card PNG."""
    importer: BuildCardImporter = _require("importer")
    data = await file.read()
    result = importer.import_file(data, filename=file.filename, content_type=file.content_type)

    if not result.ok:
        raise HTTPException(
            status_code=400,
            detail={"status": result.status.value, "message": result.message},
        )
    return BuildResponse(horse=result.horse.to_json_dict(), source=result.source)


@app.post("/builds/export/json")
async def export_build_json(blob: Any = Body(...)):
    """Export a build as a JSON file download."""
    exporter: BuildCardExporter = _require("exporter")
    exported = exporter.to_json(_parse_horse(blob))
    return _download(exported.content, exported.media_type, exported.filename)


@app.post("/builds/export/card")
async def export_build_card(blob: Any = Body(...)):
    """Export a build as an uma card PNG."""
    exporter: BuildCardExporter = _require("exporter")
    horse = _parse_horse(blob)
    try:
        exported = exporter.to_card(horse)
    except PortraitNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PNGFormatError as e:
        logger.error(f"Portrait image is not a valid PNG: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to create uma card: {e}")
    return _download(exported.content, exported.media_type, exported.filename)


@app.post("/builds/outfit", response_model=BuildResponse)
async def change_outfit(request: OutfitChangeRequest):
    """Switch a build to another outfit."""
    manager: BuildInvariantManager = _require("manager")
    horse = _parse_horse(request.horse)
    try:
        horse = manager.apply_outfit_change(horse, request.outfit_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return BuildResponse(horse=horse.to_json_dict())


@app.post("/builds/forced-position", response_model=BuildResponse)
async def set_forced_position(request: ForcedPositionRequest):
    """Set or clear a skill's forced activation position."""
    manager: BuildInvariantManager = _require("manager")
    horse = manager.set_forced_position(_parse_horse(request.horse), request.skill_id, request.value)
    return BuildResponse(horse=horse.to_json_dict())


@app.post("/builds/ocr", response_model=OCRBuildResponse)
async def build_from_screenshot(
    file: UploadFile = File(...),
    api_key: Optional[str] = Form(None),
):
    """Read a build off a game screenshot."""
    manager: BuildInvariantManager = _require("manager")
    vision_service: Optional[ScreenshotVisionService] = app_state.get("vision_service")
    if vision_service is None:
        raise HTTPException(status_code=503, detail="Vision service is disabled")

    if file.content_type and not file.content_type.startswith("image/"):
        raise HTTPException(status_code=400, detail="Please select an image file")

    image_bytes = await file.read()
    try:
        data = await vision_service.extract(image_bytes, file.content_type or "image/png", api_key)
    except VisionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ImageProcessingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (VisionRequestError, VisionResponseError) as e:
        logger.error(f"Screenshot extraction failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except VisionServiceError as e:
        raise HTTPException(status_code=400, detail=str(e))

    horse = manager.apply_ocr_assembly(data)
    return OCRBuildResponse(horse=horse.to_json_dict(), ocr=data.model_dump(by_alias=True, mode='json'))


@app.get("/outfits/resolve")
async def resolve_outfit(epithet: str = Query(...)):
    """Resolve an outfit epithet to an outfit id ("" when unmatched)."""
    resolver: IdentifierResolver = _require("resolver")
    return {"epithet": epithet, "outfit_id": resolver.resolve_outfit_epithet(epithet)}


@app.get("/skills/resolve")
async def resolve_skills(name: List[str] = Query(...)):
    """Resolve skill names to skill ids, dropping names that do not match."""
    resolver: IdentifierResolver = _require("resolver")
    return {"skill_ids": resolver.resolve_skill_names(name)}


@app.get("/skills/selectable")
async def selectable_skills(outfit_id: str = Query("")):
    """Skills the skill picker offers for an outfit."""
    manager: BuildInvariantManager = _require("manager")
    return {"skill_ids": manager.selectable_skills(outfit_id)}
