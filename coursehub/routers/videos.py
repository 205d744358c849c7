import logging
import uuid

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from sqlalchemy.orm import Session as DbSession

from coursehub.config import Settings, get_app_settings
from coursehub.database import get_db
from coursehub.errors import RequestTimedOut, UpstreamFailure, ValidationFailed
from coursehub.models.user import User
from coursehub.models.video import Video
from coursehub.schemas.course import VideoIn, VideoOut, dump
from coursehub.services import media
from coursehub.services.authz import require_tutor
from coursehub.services.course_content import module_videos, new_video, next_order_index
from coursehub.services.course_totals import recompute_course_totals
from coursehub.services.deadlines import expired
from coursehub.services.local_files import delete_local_file, save_upload
from coursehub.services.ownership import delete_video_rows, get_course_module, get_module_video, get_owned_course
from coursehub.validation import VIDEO_RULES, validate, validated

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/courses/{course_id}/modules/{module_id}/videos", tags=["videos"])

VIDEO_MIMES = {
    "video/mp4",
    "video/mpeg",
    "video/quicktime",
    "video/x-msvideo",
    "video/x-matroska",
    "video/webm",
}

# title and description arrive as form fields on the upload route
UPLOAD_FORM_RULES = [rule for rule in VIDEO_RULES if rule.field in ("title", "description")]


@router.post("", status_code=201)
def add_video(
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    user: User = Depends(require_tutor),
    payload: VideoIn = Depends(validated(VIDEO_RULES, VideoIn)),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)

    video = new_video(course, module, payload, next_order_index(db, Video.order_index, Video.module_id == module.id))
    db.add(video)
    recompute_course_totals(db, course)
    db.commit()
    db.refresh(video)

    return {"success": True, "message": "Video added successfully", "video": dump(VideoOut, video)}


@router.post("/upload", status_code=201)
def upload_video(
    request: Request,
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    file: UploadFile | None = File(None),
    title: str | None = Form(None),
    description: str | None = Form(None),
    is_demo: bool = Form(False),
    user: User = Depends(require_tutor),
    db: DbSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    cdn: media.MediaCdn = Depends(media.get_media_cdn),
):
    if file is None or not file.filename:
        raise ValidationFailed([], detail="No video file provided")
    if file.content_type not in VIDEO_MIMES:
        raise ValidationFailed([], detail="Invalid file type. Only video files are allowed.")
    if not title or not title.strip():
        raise ValidationFailed([], detail="Video title is required")
    errors = validate({"title": title, "description": description}, UPLOAD_FORM_RULES)
    if errors:
        raise ValidationFailed(errors)

    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)

    # the local copy only lives for the duration of the CDN upload
    local_path = save_upload(file, settings.uploads_dir)
    try:
        result = media.upload_video(cdn, local_path, course.playlist_name, title, is_demo)
    finally:
        delete_local_file(local_path)

    if not result.success:
        raise UpstreamFailure("Failed to upload video to media CDN", error=result.error)

    if expired(request):
        logger.warning("Upload of %s finished after the request deadline; discarding it", result.public_id)
        media.delete_video(cdn, result.public_id)
        raise RequestTimedOut()

    video = Video(
        course_id=course.id,
        module_id=module.id,
        title=title.strip(),
        description=(description or "").strip(),
        url=result.url,
        public_id=result.public_id,
        duration=round(result.duration or 0),
        order_index=next_order_index(db, Video.order_index, Video.module_id == module.id),
        is_demo=is_demo,
    )
    db.add(video)
    recompute_course_totals(db, course)
    db.commit()
    db.refresh(video)
    logger.info("Stored uploaded video %s (%s) for course %s", video.id, video.public_id, course.id)

    return {"success": True, "message": "Video uploaded successfully", "video": dump(VideoOut, video)}


@router.get("")
def list_videos(
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    user: User = Depends(require_tutor),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)
    return {"success": True, "videos": [dump(VideoOut, v) for v in module_videos(db, module.id)]}


@router.put("/{video_id}")
def update_video(
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    video_id: uuid.UUID,
    user: User = Depends(require_tutor),
    payload: VideoIn = Depends(validated(VIDEO_RULES, VideoIn)),
    db: DbSession = Depends(get_db),
):
    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)
    video = get_module_video(db, module, video_id)

    video.title = payload.title.strip()
    video.url = payload.url.strip() if payload.url else video.url
    video.duration = int(payload.duration)
    if payload.description is not None:
        video.description = payload.description.strip()
    if payload.order is not None:
        video.order_index = payload.order
    if "is_demo" in payload.model_fields_set:
        video.is_demo = payload.is_demo

    recompute_course_totals(db, course)
    db.commit()
    db.refresh(video)
    return {"success": True, "message": "Video updated successfully", "video": dump(VideoOut, video)}


@router.delete("/{video_id}")
def delete_video(
    course_id: uuid.UUID,
    module_id: uuid.UUID,
    video_id: uuid.UUID,
    user: User = Depends(require_tutor),
    db: DbSession = Depends(get_db),
    cdn: media.MediaCdn = Depends(media.get_media_cdn),
):
    course = get_owned_course(db, course_id, user)
    module = get_course_module(db, course, module_id)
    video = get_module_video(db, module, video_id)

    if video.public_id:
        removed = media.delete_video(cdn, video.public_id)
        if not removed.get("success"):
            logger.warning("CDN asset %s not removed: %s", video.public_id, removed.get("error"))

    delete_video_rows(db, Video.id == video.id)
    recompute_course_totals(db, course)
    db.commit()
    return {"success": True, "message": "Video deleted successfully"}
