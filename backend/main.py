import base64
import logging
import os
import uuid
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv(".env.local"); load_dotenv()  # also loads .env if present

from cachetools import TTLCache  # noqa: E402
from fastapi import Depends, FastAPI, HTTPException, Response  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from pydantic import BaseModel, Field  # noqa: E402

from pdf_autofill import (  # noqa: E402
    ApplicationData,
    FieldMapping,
    MappingEditorSession,
    MappingNotFoundError,
    MappingStoreError,
    PDFAutoFillError,
    PDFAutoFillService,
    TemplateLoadError,
    default_catalog,
)
from pdf_autofill import pdf_utils  # noqa: E402
from pdf_autofill.registry import A4_HEIGHT, A4_WIDTH, export_coordinates  # noqa: E402

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
logger = logging.getLogger(__name__)

app = FastAPI(title="Childcare application PDF auto-fill")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

SESSION_TTL = int(os.getenv("EDITOR_SESSION_TTL", "3600"))  # 1 hour default
SESSIONS = TTLCache(maxsize=1000, ttl=SESSION_TTL)


@lru_cache
def get_service() -> PDFAutoFillService:
    return PDFAutoFillService()


def get_session(sid: str) -> MappingEditorSession:
    session = SESSIONS.get(sid)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Editor session '{sid}' not found or expired")
    return session


def _template_page_sizes(service: PDFAutoFillService, template_name: str) -> Optional[list]:
    try:
        reader = pdf_utils.load_reader(service.templates.load(template_name))
    except TemplateLoadError:
        return None
    return pdf_utils.page_sizes(reader)


def _decode_pdf(encoded: str) -> bytes:
    try:
        return base64.b64decode(encoded, validate=True)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="template_base64 is not valid base64") from exc


def _fill_error(exc: PDFAutoFillError) -> HTTPException:
    if isinstance(exc, MappingNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, TemplateLoadError):
        return HTTPException(status_code=422, detail=f"Could not read template: {exc}")
    return HTTPException(status_code=500, detail=f"Internal rendering failure: {exc}")


@app.get("/health")
def health_check() -> dict:
    return {"status": "ok"}


# --- Catalog, templates, registry ---------------------------------------------


@app.get("/pdf/fields")
def pdf_list_fields():
    return {"fields": [f.model_dump() for f in default_catalog()]}


@app.get("/pdf/templates")
def pdf_list_templates(refresh: bool = False, service: PDFAutoFillService = Depends(get_service)):
    return {"templates": service.list_templates(refresh=refresh)}


@app.get("/pdf/templates/{template_name}/registry")
def pdf_get_registry_entry(template_name: str, service: PDFAutoFillService = Depends(get_service)):
    entry = service.get_registry_entry(template_name)
    if not entry:
        raise HTTPException(status_code=404, detail=f"No registry entry for '{template_name}'")
    return {"template": template_name, "mapping": entry}


@app.get("/pdf/templates/{template_name}/pages/{page}/preview")
def pdf_page_preview(
    template_name: str,
    page: int,
    zoom: float = 1.0,
    service: PDFAutoFillService = Depends(get_service),
):
    try:
        png, (width, height) = pdf_utils.render_page_png(service.templates.load(template_name), page, zoom)
    except TemplateLoadError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    headers = {"X-Preview-Width": str(width), "X-Preview-Height": str(height)}
    return Response(content=png, media_type="image/png", headers=headers)


# --- Saved mappings -------------------------------------------------------------


class MappingSaveRequest(BaseModel):
    fields: List[FieldMapping] = Field(default_factory=list)


@app.get("/pdf/mappings")
def pdf_list_mappings(service: PDFAutoFillService = Depends(get_service)):
    return {"mappings": [m.to_json_dict() for m in service.store.list_all()]}


@app.get("/pdf/mappings/{template_name}")
def pdf_get_mapping(template_name: str, service: PDFAutoFillService = Depends(get_service)):
    record = service.store.load(template_name)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No saved mapping for '{template_name}'")
    return record.to_json_dict()


@app.put("/pdf/mappings/{template_name}")
def pdf_save_mapping(
    template_name: str,
    req: MappingSaveRequest,
    service: PDFAutoFillService = Depends(get_service),
):
    try:
        record = service.store.save(template_name, req.fields)
    except MappingStoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid mapping for '{template_name}': {exc}") from exc
    return record.to_json_dict()


@app.delete("/pdf/mappings/{template_name}")
def pdf_delete_mapping(template_name: str, service: PDFAutoFillService = Depends(get_service)):
    return {"deleted": service.store.delete(template_name)}


@app.get("/pdf/mappings/{template_name}/export")
def pdf_export_mapping(template_name: str, service: PDFAutoFillService = Depends(get_service)):
    record = service.store.load(template_name)
    if record is None:
        raise HTTPException(status_code=404, detail=f"No saved mapping for '{template_name}'")
    return {"template": template_name, "mapping": export_coordinates(record.fields)}


# --- Mapping editor sessions -----------------------------------------------------


class EditorOpenRequest(BaseModel):
    template_name: str
    page_count: Optional[int] = Field(None, ge=1)


class EditorSelectRequest(BaseModel):
    field_id: str


class EditorPageRequest(BaseModel):
    page: int


class PreviewSize(BaseModel):
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)


class EditorPlaceRequest(BaseModel):
    x: float
    y: float
    preview: Optional[PreviewSize] = None


class EditorRemoveRequest(BaseModel):
    field_id: str


class EditorClearRequest(BaseModel):
    confirm: bool = False


@app.post("/pdf/editor/sessions")
def editor_open(req: EditorOpenRequest, service: PDFAutoFillService = Depends(get_service)):
    page_count = req.page_count
    if page_count is None:
        sizes = _template_page_sizes(service, req.template_name)
        page_count = len(sizes) if sizes else None
    session = MappingEditorSession(req.template_name, default_catalog(), service.store, page_count=page_count)
    sid = str(uuid.uuid4())
    SESSIONS[sid] = session
    return {"session_id": sid, **session.snapshot()}


@app.get("/pdf/editor/sessions/{sid}")
def editor_get(sid: str):
    return get_session(sid).snapshot()


@app.post("/pdf/editor/sessions/{sid}/select")
def editor_select(sid: str, req: EditorSelectRequest):
    session = get_session(sid)
    try:
        session.select_field(req.field_id)
    except KeyError as exc:
        raise HTTPException(status_code=400, detail=f"Unknown field '{req.field_id}'") from exc
    return session.snapshot()


@app.post("/pdf/editor/sessions/{sid}/cancel")
def editor_cancel(sid: str):
    session = get_session(sid)
    session.cancel_selection()
    return session.snapshot()


@app.post("/pdf/editor/sessions/{sid}/page")
def editor_page(sid: str, req: EditorPageRequest):
    session = get_session(sid)
    try:
        session.set_page(req.page)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return session.snapshot()


@app.post("/pdf/editor/sessions/{sid}/place")
def editor_place(sid: str, req: EditorPlaceRequest, service: PDFAutoFillService = Depends(get_service)):
    session = get_session(sid)
    if req.preview is None:
        placed = session.place_at(req.x, req.y)
    else:
        sizes = _template_page_sizes(service, session.template_name) or []
        page_size = sizes[session.current_page] if session.current_page < len(sizes) else (A4_WIDTH, A4_HEIGHT)
        placed = session.place_at_preview(req.x, req.y, (req.preview.width, req.preview.height), page_size)
    return {"placed": placed.to_json_dict() if placed else None, **session.snapshot()}


@app.post("/pdf/editor/sessions/{sid}/remove")
def editor_remove(sid: str, req: EditorRemoveRequest):
    session = get_session(sid)
    removed = session.remove_mapping(req.field_id)
    return {"removed": removed, **session.snapshot()}


@app.post("/pdf/editor/sessions/{sid}/clear")
def editor_clear(sid: str, req: EditorClearRequest):
    session = get_session(sid)
    if not session.clear_all(confirm=req.confirm):
        raise HTTPException(status_code=400, detail="Clearing all mappings requires confirm=true")
    return session.snapshot()


@app.post("/pdf/editor/sessions/{sid}/save")
def editor_save(sid: str):
    session = get_session(sid)
    try:
        record = session.save()
    except MappingStoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"saved": record.to_json_dict(), **session.snapshot()}


@app.delete("/pdf/editor/sessions/{sid}")
def editor_close(sid: str):
    return {"closed": SESSIONS.pop(sid, None) is not None}


# --- Filling ----------------------------------------------------------------------


class PDFFillRequest(BaseModel):
    template_name: str
    data: ApplicationData
    template_base64: Optional[str] = None
    persist: bool = False


class PDFGenerateRequest(BaseModel):
    data: ApplicationData
    template_name: Optional[str] = None
    persist: bool = False


def _run_fill(req: PDFFillRequest, service: PDFAutoFillService) -> dict:
    template_bytes = _decode_pdf(req.template_base64) if req.template_base64 else None
    try:
        return service.fill_template(
            req.template_name,
            req.data,
            template_bytes=template_bytes,
            persist=req.persist,
        )
    except PDFAutoFillError as exc:
        raise _fill_error(exc) from exc


@app.post("/pdf/fill")
def pdf_fill(req: PDFFillRequest, service: PDFAutoFillService = Depends(get_service)):
    result = _run_fill(req, service)
    return {
        "metadata": result["metadata"],
        "pdf_base64": base64.b64encode(result["bytes"]).decode("ascii"),
    }


@app.post("/pdf/fill/download")
def pdf_fill_download(req: PDFFillRequest, service: PDFAutoFillService = Depends(get_service)):
    result = _run_fill(req, service)
    pdf_id = result["metadata"]["pdf_id"]
    headers = {"Content-Disposition": f'attachment; filename="{pdf_id}.pdf"'}
    return Response(content=result["bytes"], media_type="application/pdf", headers=headers)


@app.post("/pdf/generate")
def pdf_generate(req: PDFGenerateRequest, service: PDFAutoFillService = Depends(get_service)):
    result = service.generate_application_pdf(req.data, template_name=req.template_name, persist=req.persist)
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["error"])
    return {
        "source": result["source"],
        "metadata": result["metadata"],
        "pdf_base64": base64.b64encode(result["bytes"]).decode("ascii"),
    }


@app.get("/pdf/{pdf_id}")
def pdf_get_pdf(pdf_id: str, service: PDFAutoFillService = Depends(get_service)):
    """Download a generated PDF by ID"""
    record = service.get_pdf(pdf_id)
    if not record:
        raise HTTPException(status_code=404, detail="PDF not found")
    headers = {"Content-Disposition": f'attachment; filename="{pdf_id}.pdf"'}
    return Response(content=record["bytes"], media_type="application/pdf", headers=headers)
