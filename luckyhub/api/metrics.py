import logging
from datetime import date, datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from luckyhub.api.auth import MAX_ROW_ID, get_current_user
from luckyhub.core.roles import Capability, has_capability
from luckyhub.db.models import BodyMetric, User
from luckyhub.db.session import get_db
from luckyhub.services.llm import AI_BUSY_MESSAGE, LLMClient, get_llm_client

router = APIRouter(prefix="/api/body-metrics", tags=["body-metrics"])
logger = logging.getLogger("uvicorn.error")

METRIC_FIELDS = (
    "weight_kg",
    "body_fat_pct",
    "bone_mineral_kg",
    "body_water_pct",
    "muscle_mass_kg",
    "physique_rating",
    "bmr_kcal",
    "metabolic_age",
    "visceral_fat",
    "change_analysis",
)


class MetricWriteRequest(BaseModel):
    measured_at: date
    weight_kg: Optional[float] = Field(default=None, gt=0, le=500)
    body_fat_pct: Optional[float] = Field(default=None, ge=0, le=100)
    bone_mineral_kg: Optional[float] = Field(default=None, ge=0, le=50)
    body_water_pct: Optional[float] = Field(default=None, ge=0, le=100)
    muscle_mass_kg: Optional[float] = Field(default=None, ge=0, le=300)
    physique_rating: Optional[float] = Field(default=None, ge=0, le=10)
    bmr_kcal: Optional[float] = Field(default=None, ge=0, le=10000)
    metabolic_age: Optional[float] = Field(default=None, ge=0, le=150)
    visceral_fat: Optional[float] = Field(default=None, ge=0, le=60)
    change_analysis: Optional[str] = Field(default=None, max_length=8000)
    note: str = Field(default="", max_length=4000)


class MetricItem(BaseModel):
    id: int
    user_id: int
    measured_at: date
    weight_kg: Optional[float] = None
    body_fat_pct: Optional[float] = None
    bone_mineral_kg: Optional[float] = None
    body_water_pct: Optional[float] = None
    muscle_mass_kg: Optional[float] = None
    physique_rating: Optional[float] = None
    bmr_kcal: Optional[float] = None
    metabolic_age: Optional[float] = None
    visceral_fat: Optional[float] = None
    change_analysis: Optional[str] = None
    note: str
    created_at: datetime


class LatestWithPreviousResponse(BaseModel):
    latest: Optional[MetricItem] = None
    previous: Optional[MetricItem] = None


class NoteUpdateRequest(BaseModel):
    note: str = Field(max_length=4000)


class AnalyzeImageRequest(BaseModel):
    image_base64: str
    prompt: Optional[str] = Field(default=None, max_length=4000)
    fullname: Optional[str] = Field(default=None, max_length=255)
    gender: Optional[str] = Field(default=None, max_length=32)
    height: Optional[float] = None
    age: Optional[int] = None


class AnalyzeImageResponse(BaseModel):
    text: str
    ai_available: bool


def metric_item(row: BodyMetric) -> MetricItem:
    return MetricItem(
        id=row.id,
        user_id=row.user_id,
        measured_at=row.measured_at,
        note=row.note or "",
        created_at=row.created_at,
        **{field: getattr(row, field) for field in METRIC_FIELDS},
    )


def latest_metrics(db: Session, user_id: int, count: int = 2) -> list[BodyMetric]:
    return (
        db.query(BodyMetric)
        .filter(BodyMetric.user_id == user_id)
        .order_by(BodyMetric.measured_at.desc(), BodyMetric.id.desc())
        .limit(count)
        .all()
    )


def _inbody_prompt(payload: AnalyzeImageRequest) -> str:
    details = []
    if payload.gender:
        details.append(f"gender {payload.gender}")
    if payload.height:
        details.append(f"height {payload.height:g} cm")
    if payload.age:
        details.append(f"age {payload.age}")
    who = (payload.fullname or "the member").strip()
    suffix = f" ({', '.join(details)})" if details else ""
    return (
        f"Read the body composition scan in this image for {who}{suffix}. "
        "Return JSON only, with keys: measured_at, weight_kg, body_fat_pct, bone_mineral_kg, "
        "body_water_pct, muscle_mass_kg, physique_rating, bmr_kcal, metabolic_age, visceral_fat, "
        "change_analysis."
    )


@router.post("", response_model=MetricItem, status_code=status.HTTP_201_CREATED)
def create_metric(
    payload: MetricWriteRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MetricItem:
    record = BodyMetric(user_id=user.id, **payload.model_dump())
    db.add(record)
    db.commit()
    db.refresh(record)
    return metric_item(record)


@router.get("/latest-with-previous", response_model=LatestWithPreviousResponse)
def get_latest_with_previous(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> LatestWithPreviousResponse:
    rows = latest_metrics(db, user.id)
    return LatestWithPreviousResponse(
        latest=metric_item(rows[0]) if len(rows) > 0 else None,
        previous=metric_item(rows[1]) if len(rows) > 1 else None,
    )


@router.get("/all", response_model=list[MetricItem])
def list_metrics(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[MetricItem]:
    rows = (
        db.query(BodyMetric)
        .filter(BodyMetric.user_id == user.id)
        .order_by(BodyMetric.measured_at.asc(), BodyMetric.id.asc())
        .all()
    )
    return [metric_item(row) for row in rows]


@router.patch("/{metric_id}/note", response_model=MetricItem)
def update_metric_note(
    metric_id: Annotated[int, Path(ge=1, le=MAX_ROW_ID)],
    payload: NoteUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MetricItem:
    record = db.query(BodyMetric).filter(BodyMetric.id == metric_id).first()
    if not record:
        raise HTTPException(status_code=404, detail="Metric not found")
    if record.user_id != user.id and not has_capability(user, Capability.note):
        raise HTTPException(status_code=403, detail="Missing permission: note")
    record.note = payload.note.strip()
    db.commit()
    db.refresh(record)
    return metric_item(record)


@router.post("/analyze-image", response_model=AnalyzeImageResponse)
def analyze_image(
    payload: AnalyzeImageRequest,
    user: User = Depends(get_current_user),
    llm_client: LLMClient = Depends(get_llm_client),
) -> AnalyzeImageResponse:
    prompt = (payload.prompt or "").strip() or _inbody_prompt(payload)
    text = llm_client.generate_text(prompt, image=payload.image_base64)
    if text is None:
        logger.warning("inbody_analysis_unavailable user_id=%s", user.id)
        return AnalyzeImageResponse(text=AI_BUSY_MESSAGE, ai_available=False)
    return AnalyzeImageResponse(text=text, ai_available=True)
