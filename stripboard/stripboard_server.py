import logging
import traceback
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from stripboard.config.config import config
from stripboard.schedule import tools
from stripboard.schedule.access import ProjectAccess, require_view
from stripboard.schedule.errors import (
    ConflictOnConcurrentWrite,
    InvalidArgument,
    NotFound,
    PermissionDenied,
    ScheduleError,
)
from stripboard.utils.logging_setup import configure_logging

configure_logging(
    log_file=config["log_file"],
    level=config["log_level"],
    enable_console=config["log_console"],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    tools.close_all()


app = FastAPI(title="Stripboard Schedule API", version="0.1.0", lifespan=lifespan)

# CORS middleware setting
app.add_middleware(
    CORSMiddleware,
    allow_origins=config["cors_origins"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    NotFound: 404,
    InvalidArgument: 400,
    PermissionDenied: 403,
    ConflictOnConcurrentWrite: 409,
}


@app.exception_handler(ScheduleError)
async def schedule_error_handler(request: Request, exc: ScheduleError):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    if status == 409:
        logger.warning(f"{request.method} {request.url.path} - conflict: {exc}")
    return JSONResponse(status_code=status, content={"error": str(exc), "retryable": exc.retryable})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"Error processing {request.method} {request.url.path}: {exc}")
    logger.error(traceback.format_exc())
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


class Caller(BaseModel):
    role: str = ""
    user_id: str = ""


def caller(
    x_project_role: Optional[str] = Header(default=None),
    x_user_id: Optional[str] = Header(default=None),
) -> Caller:
    """Role and user id as set by the gateway that authenticated the request."""
    return Caller(role=x_project_role or "", user_id=x_user_id or "")


def viewer(who: Caller = Depends(caller)) -> Caller:
    require_view(ProjectAccess.parse(who.role, user_id=who.user_id or None))
    return who


class StartDateRequest(BaseModel):
    start_date: Optional[str] = None


class ReorderRequest(BaseModel):
    strip_id: str = Field(min_length=1)
    new_position: int


class ToggleDayBreakRequest(BaseModel):
    after_position: int
    renumber: bool = False


class BannerRequest(BaseModel):
    after_position: int
    label: str
    banner_type: str = "INFO"


class CharacterRequest(BaseModel):
    name: str
    number: Optional[int] = None
    actor: Optional[str] = None


class ElementRequest(BaseModel):
    category: str
    name: str
    notes: Optional[str] = None


class SceneRequest(BaseModel):
    scene_numbers: Optional[str] = None
    int_ext: Optional[str] = None
    day_night: Optional[str] = None
    location: Optional[str] = None
    page_count: Optional[str] = None
    description: Optional[str] = None
    story_day: Optional[int] = None
    is_flashback: Optional[bool] = None
    stunts: Optional[str] = None
    extras: Optional[str] = None
    wardrobe: Optional[str] = None
    props: Optional[str] = None
    set_dressing: Optional[str] = None
    art_dept: Optional[str] = None
    special_personnel: Optional[str] = None
    vehicles: Optional[str] = None
    camera: Optional[str] = None
    mechanical_fx: Optional[str] = None
    visual_fx: Optional[str] = None
    special_equip: Optional[str] = None
    animals: Optional[str] = None
    sound_music: Optional[str] = None
    other: Optional[str] = None
    dqs: Optional[str] = None
    cast_ids: Optional[List[str]] = None
    element_ids: Optional[List[str]] = None

    def fields(self) -> Dict[str, Any]:
        # Only what the caller sent, so PATCH leaves other fields alone.
        data = self.model_dump(exclude_unset=True)
        data.pop("cast_ids", None)
        data.pop("element_ids", None)
        return data


class HealthResponse(BaseModel):
    status: str
    timestamp: str


# --- schedule ---
@app.get("/projects/{project_id}/schedule")
def get_schedule(project_id: str, who: Caller = Depends(viewer)):
    return tools.schedule_get(project_id)


@app.patch("/projects/{project_id}/schedule")
def set_start_date(project_id: str, body: StartDateRequest, who: Caller = Depends(caller)):
    logger.info(f"PATCH /projects/{project_id}/schedule - start_date: {body.start_date}")
    return tools.schedule_set_start_date(project_id, body.start_date, role=who.role, user_id=who.user_id)


@app.post("/projects/{project_id}/schedule/reorder")
def reorder_strip(project_id: str, body: ReorderRequest, who: Caller = Depends(caller)):
    return tools.schedule_reorder_strip(
        project_id, body.strip_id, body.new_position, role=who.role, user_id=who.user_id
    )


@app.post("/projects/{project_id}/schedule/daybreaks")
def toggle_day_break(project_id: str, body: ToggleDayBreakRequest, who: Caller = Depends(caller)):
    return tools.schedule_toggle_day_break(
        project_id, body.after_position, role=who.role, user_id=who.user_id, renumber=body.renumber
    )


@app.post("/projects/{project_id}/schedule/daybreaks/renumber")
def renumber_day_breaks(project_id: str, who: Caller = Depends(caller)):
    return tools.schedule_renumber_day_breaks(project_id, role=who.role, user_id=who.user_id)


@app.delete("/projects/{project_id}/schedule/daybreaks/{day_break_id}")
def delete_day_break(project_id: str, day_break_id: str, who: Caller = Depends(caller)):
    return tools.schedule_delete_day_break(project_id, day_break_id, role=who.role, user_id=who.user_id)


@app.post("/projects/{project_id}/schedule/banners")
def create_banner(project_id: str, body: BannerRequest, who: Caller = Depends(caller)):
    return tools.schedule_create_banner(
        project_id, body.after_position, body.label, body.banner_type, role=who.role, user_id=who.user_id
    )


@app.delete("/projects/{project_id}/schedule/banners/{banner_id}")
def delete_banner(project_id: str, banner_id: str, who: Caller = Depends(caller)):
    return tools.schedule_delete_banner(project_id, banner_id, role=who.role, user_id=who.user_id)


@app.get("/projects/{project_id}/schedule/reports/{kind}")
def get_report(project_id: str, kind: str, who: Caller = Depends(viewer)):
    return tools.schedule_get_report(project_id, kind)


# --- breakdown registry ---
@app.get("/projects/{project_id}/characters")
def list_characters(project_id: str, who: Caller = Depends(viewer)):
    return tools.schedule_list_characters(project_id)


@app.post("/projects/{project_id}/characters")
def add_character(project_id: str, body: CharacterRequest, who: Caller = Depends(caller)):
    return tools.schedule_add_character(
        project_id, body.name, number=body.number, actor=body.actor or "", role=who.role, user_id=who.user_id
    )


@app.get("/projects/{project_id}/elements")
def list_elements(project_id: str, who: Caller = Depends(viewer)):
    return tools.schedule_list_elements(project_id)


@app.post("/projects/{project_id}/elements")
def add_element(project_id: str, body: ElementRequest, who: Caller = Depends(caller)):
    return tools.schedule_add_element(
        project_id, body.category, body.name, notes=body.notes or "", role=who.role, user_id=who.user_id
    )


@app.get("/projects/{project_id}/breakdowns")
def list_scenes(project_id: str, who: Caller = Depends(viewer)):
    return tools.schedule_list_scenes(project_id)


@app.post("/projects/{project_id}/breakdowns")
def add_scene(project_id: str, body: SceneRequest, who: Caller = Depends(caller)):
    return tools.schedule_add_scene(
        project_id,
        body.fields(),
        cast_ids=body.cast_ids,
        element_ids=body.element_ids,
        role=who.role,
        user_id=who.user_id,
    )


@app.get("/projects/{project_id}/breakdowns/{breakdown_id}")
def get_scene(project_id: str, breakdown_id: str, who: Caller = Depends(viewer)):
    return tools.schedule_get_scene(project_id, breakdown_id)


@app.patch("/projects/{project_id}/breakdowns/{breakdown_id}")
def update_scene(project_id: str, breakdown_id: str, body: SceneRequest, who: Caller = Depends(caller)):
    return tools.schedule_update_scene(
        project_id,
        breakdown_id,
        body.fields(),
        cast_ids=body.cast_ids,
        element_ids=body.element_ids,
        role=who.role,
        user_id=who.user_id,
    )


@app.delete("/projects/{project_id}/breakdowns/{breakdown_id}")
def delete_scene(project_id: str, breakdown_id: str, who: Caller = Depends(caller)):
    return tools.schedule_delete_scene(project_id, breakdown_id, role=who.role, user_id=who.user_id)


@app.get("/health")
async def health():
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat()
    )


@app.get("/")
async def root():
    return {"message": "Stripboard Schedule API is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config["server_host"], port=int(config["server_port"]))
