import cloudinary.api
import cloudinary.uploader
import pytest

from coursehub.main import create_app
from coursehub.services import media
from coursehub.services.retry import RetryPolicy

MB = 1024 * 1024
CDN = media.MediaCdn(cloud_name="demo", api_key="key-1", api_secret="secret-1")


@pytest.fixture
def video_file(tmp_path):
    path = tmp_path / "lesson.mp4"
    path.write_bytes(b"\x00" * 2048)
    return str(path)


def cdn_response(public_id="python_basics/videos/intro", duration=12.6):
    return {
        "secure_url": f"https://res.cloudinary.com/demo/video/upload/{public_id}.mp4",
        "public_id": public_id,
        "duration": duration,
    }


def test_public_id_slugs_title_into_playlist_folder():
    assert media.video_public_id("python_basics", "  Intro   To Python ") == "python_basics/videos/intro_to_python"
    assert media.video_public_id("python_basics", "Teaser", is_demo=True) == "python_basics/demo/teaser"


def test_small_files_use_single_request_with_auto_quality():
    method, options = media.upload_plan(40 * MB, "p/videos/a")
    assert method == "upload"
    assert options["quality"] == "auto"
    assert options["fetch_format"] == "auto"
    assert options["resource_type"] == "video"
    assert options["timeout"] == 30 * 60
    assert "chunk_size" not in options


def test_large_files_use_chunked_upload():
    method, options = media.upload_plan(40 * MB + 1, "p/videos/a")
    assert method == "upload_large"
    assert options["chunk_size"] == 20_000_000
    assert options["eager_async"] is True
    assert "quality" not in options
    assert "eager_notification_url" not in options


def test_each_app_keeps_its_own_cdn_account(settings):
    first = create_app(settings.model_copy(update={"cloudinary_cloud_name": "one", "cloudinary_notification_url": "https://one/hook"}))
    second = create_app(settings.model_copy(update={"cloudinary_cloud_name": "two", "cloudinary_notification_url": None}))

    one, two = first.state.media_cdn, second.state.media_cdn

    assert (one.cloud_name, one.notification_url) == ("one", "https://one/hook")
    assert (two.cloud_name, two.notification_url) == ("two", None)
    assert media.upload_plan(41 * MB, "p/videos/a", one.notification_url)[1]["eager_notification_url"] == "https://one/hook"
    assert "eager_notification_url" not in media.upload_plan(41 * MB, "p/videos/a", two.notification_url)[1]


def test_cdn_repr_hides_secret():
    assert "secret-1" not in repr(CDN)
    assert "key-1" not in repr(CDN)


def test_upload_sends_credentials_with_each_call(monkeypatch, video_file):
    seen = {}
    monkeypatch.setattr(cloudinary.uploader, "upload", lambda path, **kw: seen.update(kw) or cdn_response())

    result = media.upload_video(CDN, video_file, "python_basics", "Intro")

    assert result.success
    assert seen["cloud_name"] == "demo"
    assert seen["api_key"] == "key-1"
    assert seen["api_secret"] == "secret-1"


def test_upload_video_takes_chunked_path_above_threshold(monkeypatch, video_file):
    calls = []
    monkeypatch.setattr(media, "SINGLE_UPLOAD_MAX_BYTES", 1024)
    monkeypatch.setattr(cloudinary.uploader, "upload", lambda *a, **kw: calls.append(("upload", kw)))
    monkeypatch.setattr(
        cloudinary.uploader,
        "upload_large",
        lambda path, **kw: calls.append(("upload_large", kw)) or cdn_response(),
    )
    cdn = media.MediaCdn(cloud_name="demo", notification_url="https://api.example.com/hook")

    result = media.upload_video(cdn, video_file, "python_basics", "Intro")

    assert result.success
    assert [name for name, _ in calls] == ["upload_large"]
    assert calls[0][1]["chunk_size"] == 20_000_000
    assert calls[0][1]["eager_notification_url"] == "https://api.example.com/hook"


def test_upload_video_succeeds_on_third_attempt_with_backoff(monkeypatch, video_file):
    attempts = []

    def upload(path, **options):
        attempts.append(options["public_id"])
        if len(attempts) < 3:
            raise RuntimeError("503 from CDN")
        return cdn_response(options["public_id"])

    monkeypatch.setattr(cloudinary.uploader, "upload", upload)
    sleeps = []

    result = media.upload_video(
        CDN, video_file, "python_basics", "Intro", retry=RetryPolicy(max_attempts=3, sleep=sleeps.append)
    )

    assert result.success
    assert len(attempts) == 3
    assert sleeps == [1.0, 2.0]
    assert result.public_id == "python_basics/videos/intro"
    assert result.duration == 12.6


def test_caller_retry_policy_is_left_untouched(monkeypatch, video_file):
    monkeypatch.setattr(cloudinary.uploader, "upload", lambda path, **kw: cdn_response())
    policy = RetryPolicy(max_attempts=2, sleep=lambda s: None, label="mine")

    media.upload_video(CDN, video_file, "python_basics", "Intro", retry=policy)

    assert policy.label == "mine"
    assert policy.max_attempts == 2


def test_upload_video_reports_failure_after_retries(monkeypatch, video_file):
    def upload(path, **options):
        raise RuntimeError("CDN down")

    monkeypatch.setattr(cloudinary.uploader, "upload", upload)

    result = media.upload_video(
        CDN, video_file, "python_basics", "Intro", retry=RetryPolicy(max_attempts=2, sleep=lambda s: None)
    )

    assert not result.success
    assert "CDN down" in result.error
    assert result.url is None


def test_response_without_url_is_a_failure(monkeypatch, video_file):
    monkeypatch.setattr(cloudinary.uploader, "upload", lambda path, **kw: {"public_id": "x"})

    result = media.upload_video(CDN, video_file, "python_basics", "Intro", retry=RetryPolicy(sleep=lambda s: None))

    assert not result.success
    assert "URL" in result.error


def test_missing_file_is_a_failure(tmp_path):
    result = media.upload_video(CDN, str(tmp_path / "gone.mp4"), "python_basics", "Intro")
    assert not result.success
    assert "not found" in result.error


def test_video_details_are_projected(monkeypatch):
    seen = {}

    def resource(public_id, **kwargs):
        seen.update(kwargs, public_id=public_id)
        return {
            "secure_url": "https://cdn/intro.mp4",
            "duration": 61.5,
            "bytes": 4096,
            "format": "mp4",
            "width": 1280,
            "height": 720,
            "created_at": "2026-01-01T00:00:00Z",
            "etag": "ignored",
        }

    monkeypatch.setattr(cloudinary.api, "resource", resource)

    result = media.get_video_details(CDN, "pb/videos/intro")

    assert seen["public_id"] == "pb/videos/intro"
    assert seen["resource_type"] == "video"
    assert seen["cloud_name"] == "demo"
    assert result == {
        "success": True,
        "details": {
            "url": "https://cdn/intro.mp4",
            "duration": 61.5,
            "size": 4096,
            "format": "mp4",
            "width": 1280,
            "height": 720,
            "created_at": "2026-01-01T00:00:00Z",
        },
    }


def test_video_details_failure_is_reported(monkeypatch):
    def resource(public_id, **kwargs):
        raise RuntimeError("Resource not found")

    monkeypatch.setattr(cloudinary.api, "resource", resource)

    assert media.get_video_details(CDN, "pb/videos/gone") == {"success": False, "error": "Resource not found"}


def test_video_url_uses_the_app_cloud():
    url = media.build_video_url(CDN, "pb/videos/intro")

    assert url.startswith("https://res.cloudinary.com/demo/video/upload/")
    assert "q_auto" in url
    assert url.endswith("pb/videos/intro")


def test_video_url_accepts_extra_transformations():
    url = media.build_video_url(CDN, "pb/videos/intro", width=640, crop="scale")

    assert "w_640" in url
    assert "c_scale" in url


def test_playlist_listing_reads_videos_folder(monkeypatch):
    seen = {}

    def resources(**kwargs):
        seen.update(kwargs)
        return {"resources": [{"public_id": "pb/videos/a"}, {"public_id": "pb/videos/b"}]}

    monkeypatch.setattr(cloudinary.api, "resources", resources)

    result = media.list_playlist_videos(CDN, "pb")

    assert seen["prefix"] == "pb/videos"
    assert seen["max_results"] == 500
    assert seen["api_secret"] == "secret-1"
    assert [v["public_id"] for v in result["videos"]] == ["pb/videos/a", "pb/videos/b"]


def test_playlist_listing_failure_is_reported(monkeypatch):
    def resources(**kwargs):
        raise RuntimeError("rate limited")

    monkeypatch.setattr(cloudinary.api, "resources", resources)

    assert media.list_playlist_videos(CDN, "pb") == {"success": False, "error": "rate limited"}


def test_demo_lookup_returns_first_match(monkeypatch):
    seen = {}

    def resources(**kwargs):
        seen.update(kwargs)
        return {"resources": [{"secure_url": "https://cdn/demo.mp4", "public_id": "pb/demo/teaser", "duration": 30, "bytes": 10}]}

    monkeypatch.setattr(cloudinary.api, "resources", resources)

    result = media.get_demo_video(CDN, "pb")

    assert seen["prefix"] == "pb/demo"
    assert seen["max_results"] == 1
    assert result["success"]
    assert result["demo"]["url"] == "https://cdn/demo.mp4"


def test_demo_lookup_without_match(monkeypatch):
    monkeypatch.setattr(cloudinary.api, "resources", lambda **kw: {"resources": []})
    assert media.get_demo_video(CDN, "pb") == {"success": False, "error": "No demo video found"}
