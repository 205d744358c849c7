"""Media CDN access (Cloudinary): the video upload pipeline and its companions.

Nothing here touches the database. Callers persist rows only after
``upload_video`` reports success.

Credentials travel with every call in a ``MediaCdn`` built from the app's
settings; the SDK's process-wide ``cloudinary.config`` is never set, so two
apps in one process keep their own accounts.
"""
from __future__ import annotations

import dataclasses
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Optional

import cloudinary.api
import cloudinary.uploader
import cloudinary.utils
from fastapi import Request

from coursehub.config import Settings
from coursehub.services.retry import RetryPolicy

logger = logging.getLogger(__name__)

SINGLE_UPLOAD_MAX_BYTES = 40 * 1024 * 1024
CHUNK_SIZE = 20_000_000
UPLOAD_TIMEOUT_SECONDS = 30 * 60
PLAYLIST_MAX_RESULTS = 500


class MediaUploadError(Exception):
    pass


@dataclass(frozen=True)
class MediaCdn:
    cloud_name: str = ""
    api_key: str = ""
    api_secret: str = ""
    notification_url: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "MediaCdn":
        cdn = cls(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            notification_url=settings.cloudinary_notification_url or None,
        )
        if not cdn.cloud_name:
            logger.warning("CLOUDINARY_CLOUD_NAME is not set; media uploads will fail")
        return cdn

    def credentials(self) -> dict[str, str]:
        return {"cloud_name": self.cloud_name, "api_key": self.api_key, "api_secret": self.api_secret}

    def __repr__(self) -> str:
        return f"MediaCdn(cloud_name={self.cloud_name!r})"


def get_media_cdn(request: Request) -> MediaCdn:
    return request.app.state.media_cdn


@dataclass
class UploadResult:
    success: bool
    url: Optional[str] = None
    public_id: Optional[str] = None
    duration: float = 0
    error: Optional[str] = None


def slugify_title(title: str) -> str:
    return re.sub(r"\s+", "_", title.strip()).lower()


def video_public_id(playlist_name: str, title: str, is_demo: bool = False) -> str:
    folder = f"{playlist_name}/demo" if is_demo else f"{playlist_name}/videos"
    return f"{folder}/{slugify_title(title)}"


def upload_plan(size: int, public_id: str, notification_url: Optional[str] = None) -> tuple[str, dict[str, Any]]:
    """Pick the upload call and its options for a file of ``size`` bytes.

    Returns ``("upload", opts)`` for single-request uploads and
    ``("upload_large", opts)`` for chunked streaming uploads.
    """
    options: dict[str, Any] = {
        "resource_type": "video",
        "public_id": public_id,
        "timeout": UPLOAD_TIMEOUT_SECONDS,
    }

    if size <= SINGLE_UPLOAD_MAX_BYTES:
        options["quality"] = "auto"
        options["fetch_format"] = "auto"
        return "upload", options

    options["chunk_size"] = CHUNK_SIZE
    options["eager_async"] = True
    if notification_url:
        options["eager_notification_url"] = notification_url
    return "upload_large", options


def _send(method: str, file_path: str, options: dict[str, Any]) -> dict:
    if method == "upload_large":
        return cloudinary.uploader.upload_large(file_path, **options)
    return cloudinary.uploader.upload(file_path, **options)


def upload_video(
    cdn: MediaCdn,
    file_path: str,
    playlist_name: str,
    title: str,
    is_demo: bool = False,
    max_retries: int = 3,
    *,
    retry: Optional[RetryPolicy] = None,
) -> UploadResult:
    """Upload a local video file to the CDN with retries.

    Never raises: failures come back as ``UploadResult(success=False)``.
    """
    try:
        if not os.path.isfile(file_path):
            raise MediaUploadError(f"File not found: {file_path}")

        size = os.path.getsize(file_path)
        public_id = video_public_id(playlist_name, title, is_demo)
        method, options = upload_plan(size, public_id, cdn.notification_url)
        logger.info(
            "Uploading video %s (%.2f MB) as %s via %s",
            file_path,
            size / (1024 * 1024),
            public_id,
            method,
        )

        policy = dataclasses.replace(retry or RetryPolicy(max_attempts=max_retries), label=f"upload {public_id}")
        result = policy.call(_send, method, file_path, {**options, **cdn.credentials()})

        url = (result or {}).get("secure_url") or (result or {}).get("url")
        result_public_id = (result or {}).get("public_id")
        if not url or not result_public_id:
            raise MediaUploadError("CDN upload did not return a valid URL/public_id")

        logger.info("Upload finished: %s (duration=%s)", result_public_id, result.get("duration"))
        return UploadResult(
            success=True,
            url=url,
            public_id=result_public_id,
            duration=result.get("duration") or 0,
        )
    except Exception as exc:
        logger.error("Video upload failed for %s: %s", file_path, exc)
        return UploadResult(success=False, error=str(exc))


def delete_video(cdn: MediaCdn, public_id: str) -> dict:
    try:
        result = cloudinary.uploader.destroy(public_id, resource_type="video", **cdn.credentials())
        return {"success": True, "result": result}
    except Exception as exc:
        logger.error("CDN delete failed for %s: %s", public_id, exc)
        return {"success": False, "error": str(exc)}


def get_video_details(cdn: MediaCdn, public_id: str) -> dict:
    try:
        result = cloudinary.api.resource(public_id, resource_type="video", **cdn.credentials())
    except Exception as exc:
        logger.error("CDN details failed for %s: %s", public_id, exc)
        return {"success": False, "error": str(exc)}

    return {
        "success": True,
        "details": {
            "url": result.get("secure_url"),
            "duration": result.get("duration"),
            "size": result.get("bytes"),
            "format": result.get("format"),
            "width": result.get("width"),
            "height": result.get("height"),
            "created_at": result.get("created_at"),
        },
    }


def build_video_url(cdn: MediaCdn, public_id: str, **options: Any) -> Optional[str]:
    opts = {
        "resource_type": "video",
        "quality": "auto",
        "fetch_format": "auto",
        "secure": True,
        "cloud_name": cdn.cloud_name,
        **options,
    }
    try:
        url, _ = cloudinary.utils.cloudinary_url(public_id, **opts)
        return url
    except Exception as exc:
        logger.error("CDN url generation failed for %s: %s", public_id, exc)
        return None


def list_playlist_videos(cdn: MediaCdn, playlist_name: str) -> dict:
    try:
        result = cloudinary.api.resources(
            type="upload",
            prefix=f"{playlist_name}/videos",
            resource_type="video",
            max_results=PLAYLIST_MAX_RESULTS,
            **cdn.credentials(),
        )
        return {"success": True, "videos": result.get("resources") or []}
    except Exception as exc:
        logger.error("CDN list failed for %s: %s", playlist_name, exc)
        return {"success": False, "error": str(exc)}


def get_demo_video(cdn: MediaCdn, playlist_name: str) -> dict:
    try:
        result = cloudinary.api.resources(
            type="upload",
            prefix=f"{playlist_name}/demo",
            resource_type="video",
            max_results=1,
            **cdn.credentials(),
        )
    except Exception as exc:
        logger.error("CDN demo lookup failed for %s: %s", playlist_name, exc)
        return {"success": False, "error": str(exc)}

    resources = result.get("resources") or []
    if not resources:
        return {"success": False, "error": "No demo video found"}

    demo = resources[0]
    return {
        "success": True,
        "demo": {
            "url": demo.get("secure_url"),
            "public_id": demo.get("public_id"),
            "duration": demo.get("duration"),
            "size": demo.get("bytes"),
        },
    }


def upload_profile_picture(cdn: MediaCdn, file_path: str, user_id) -> str:
    """Upload an avatar image and return its public URL. Raises on failure."""
    result = cloudinary.uploader.upload(
        file_path,
        resource_type="image",
        folder="profile_pictures",
        public_id=f"user_{user_id}",
        overwrite=True,
        quality="auto",
        fetch_format="auto",
        **cdn.credentials(),
    )
    url = result.get("secure_url") or result.get("url")
    if not url:
        raise MediaUploadError("CDN upload did not return a URL")
    return url


def ping(cdn: MediaCdn) -> dict:
    return cloudinary.api.ping(**cdn.credentials())
