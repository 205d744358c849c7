import uuid

import pytest
from sqlalchemy import func, select

from coursehub.models.certificate import Certificate
from coursehub.models.enrollment import Enrollment
from coursehub.models.video import Video
from coursehub.models.video_watch import VideoWatch
from coursehub.routers.progress import watch_progress
from coursehub.services import media

pytestmark = pytest.mark.anyio


@pytest.fixture
def tutor(make_user):
    return make_user(role="tutor")


@pytest.fixture
def student(make_user):
    return make_user(role="student", first_name="Grace", last_name="Hopper")


@pytest.fixture
async def course(client, tutor, auth_header):
    headers = auth_header(tutor)
    r = await client.post(
        "/api/courses",
        headers=headers,
        json={
            "name": "Compilers",
            "description": "From source text to machine code",
            "price": 30,
            "category": "Programming",
            "playlist_name": "compilers",
            "modules": [
                {
                    "title": "Front end",
                    "videos": [
                        {"title": "Lexing", "url": "https://cdn.example.com/1.mp4", "duration": 60},
                        {"title": "Parsing", "url": "https://cdn.example.com/2.mp4", "duration": 90},
                        {"title": "Checking", "url": "https://cdn.example.com/3.mp4", "duration": 30},
                    ],
                }
            ],
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()["course"]
    assert (await client.patch(f"/api/courses/{body['id']}/publish", headers=headers)).status_code == 200
    return body


@pytest.fixture
async def enrollment(client, student, auth_header, course):
    r = await client.post(f"/api/student/courses/{course['id']}/enroll", headers=auth_header(student))
    return r.json()["enrollment"]


def watch_url(enrollment, video):
    return f"/api/student/enrollments/{enrollment['id']}/videos/{video['id']}/watch"


async def watch_all(client, headers, enrollment, course):
    for video in course["videos"]:
        r = await client.post(watch_url(enrollment, video), headers=headers)
        assert r.status_code == 200


def test_progress_rounds_halves_up():
    assert watch_progress(1, 3) == 33
    assert watch_progress(2, 3) == 67
    assert watch_progress(1, 8) == 13
    assert watch_progress(0, 0) == 0


async def test_watching_updates_progress_once(client, db, student, auth_header, course, enrollment):
    headers = auth_header(student)
    first = course["videos"][0]

    r = await client.post(watch_url(enrollment, first), headers=headers)
    assert r.json()["message"] == "Video marked as watched"
    assert r.json()["progress"] == 33

    again = await client.post(watch_url(enrollment, first), headers=headers)
    assert again.json()["message"] == "Video already marked as watched"
    assert again.json()["progress"] == 33
    assert db.execute(select(func.count(VideoWatch.id))).scalar_one() == 1

    await client.post(watch_url(enrollment, course["videos"][1]), headers=headers)
    db.expire_all()
    assert db.get(Enrollment, uuid.UUID(enrollment["id"])).progress == 67

    status = await client.get(f"/api/student/enrollments/{enrollment['id']}/watch-status", headers=headers)
    assert status.json()["totalWatched"] == 2
    assert status.json()["watchStatus"] == {course["videos"][0]["id"]: True, course["videos"][1]["id"]: True}


async def test_watch_needs_own_enrollment_and_course_video(client, make_user, student, auth_header, course, enrollment):
    stranger = make_user(role="student")
    r = await client.post(watch_url(enrollment, course["videos"][0]), headers=auth_header(stranger))
    assert r.status_code == 404
    assert r.json()["message"] == "Enrollment not found"

    unknown_video = {"id": str(uuid.uuid4())}
    r = await client.post(watch_url(enrollment, unknown_video), headers=auth_header(student))
    assert r.status_code == 404
    assert r.json()["message"] == "Video not found"


async def test_completion_requires_every_video(client, db, student, auth_header, course, enrollment):
    headers = auth_header(student)
    await client.post(watch_url(enrollment, course["videos"][0]), headers=headers)

    r = await client.post(f"/api/student/enrollments/{enrollment['id']}/complete", headers=headers)

    assert r.status_code == 400
    assert r.json()["message"] == "You must watch all videos to complete the course"
    assert db.execute(select(func.count(Certificate.id))).scalar_one() == 0


async def test_completion_issues_one_certificate(client, db, student, auth_header, course, enrollment):
    headers = auth_header(student)
    await watch_all(client, headers, enrollment, course)

    r = await client.post(f"/api/student/enrollments/{enrollment['id']}/complete", headers=headers)

    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Course completed and certificate generated"
    assert body["enrollment"]["status"] == "completed"
    assert body["enrollment"]["progress"] == 100
    assert body["enrollment"]["completed_at"]
    number = body["certificate"]["certificate_number"]
    assert number.startswith("CERT-") and number.endswith(f"-{student.id}")

    again = await client.post(f"/api/student/enrollments/{enrollment['id']}/complete", headers=headers)
    assert again.json()["certificate"]["id"] == body["certificate"]["id"]
    assert db.execute(select(func.count(Certificate.id))).scalar_one() == 1


async def test_certificates_listed_fetched_and_verified(client, make_user, student, auth_header, course, enrollment):
    headers = auth_header(student)
    await watch_all(client, headers, enrollment, course)
    certificate = (
        await client.post(f"/api/student/enrollments/{enrollment['id']}/complete", headers=headers)
    ).json()["certificate"]

    listed = await client.get("/api/student/certificates", headers=headers)
    assert [c["course_name"] for c in listed.json()["certificates"]] == ["Compilers"]
    assert listed.json()["pagination"] == {"total": 1, "page": 1, "limit": 10, "pages": 1}

    own = await client.get(f"/api/student/certificates/{certificate['id']}", headers=headers)
    assert own.json()["certificate"]["student_name"] == "Grace Hopper"

    someone_else = await client.get(
        f"/api/student/certificates/{certificate['id']}", headers=auth_header(make_user(role="student"))
    )
    assert someone_else.status_code == 404

    verified = await client.get(f"/api/student/certificates/verify/{certificate['certificate_number']}")
    assert verified.status_code == 200
    assert verified.json()["verified"] is True
    assert verified.json()["certificate"]["course_name"] == "Compilers"

    forged = await client.get("/api/student/certificates/verify/CERT-1-nobody")
    assert forged.status_code == 404
    assert forged.json() == {"success": False, "message": "Certificate not found", "verified": False}


async def test_deleting_course_removes_watches_and_certificates(client, db, tutor, student, auth_header, course, enrollment):
    headers = auth_header(student)
    await watch_all(client, headers, enrollment, course)
    await client.post(f"/api/student/enrollments/{enrollment['id']}/complete", headers=headers)

    r = await client.delete(f"/api/courses/{course['id']}", headers=auth_header(tutor))

    assert r.status_code == 200
    for model in (VideoWatch, Certificate, Enrollment):
        assert db.execute(select(func.count()).select_from(model)).scalar_one() == 0


async def test_deleting_video_removes_its_watches(client, db, tutor, student, auth_header, course, enrollment):
    video = course["videos"][0]
    await client.post(watch_url(enrollment, video), headers=auth_header(student))

    r = await client.delete(
        f"/api/courses/{course['id']}/modules/{video['module_id']}/videos/{video['id']}", headers=auth_header(tutor)
    )

    assert r.status_code == 200
    assert db.execute(select(func.count(VideoWatch.id))).scalar_one() == 0


async def test_video_details_for_enrolled_student(client, db, make_user, student, auth_header, course, enrollment, monkeypatch):
    row = db.get(Video, uuid.UUID(course["videos"][0]["id"]))
    row.public_id = "compilers/videos/lexing"
    db.commit()
    monkeypatch.setattr(
        media, "get_video_details", lambda cdn, public_id: {"success": True, "details": {"duration": 60, "format": "mp4"}}
    )
    monkeypatch.setattr(media, "build_video_url", lambda cdn, public_id, **kw: f"https://cdn/{public_id}")

    r = await client.get(f"/api/student/videos/{row.id}", headers=auth_header(student))

    assert r.status_code == 200
    video = r.json()["video"]
    assert video["stream_url"] == "https://cdn/compilers/videos/lexing"
    assert video["cdn_details"]["format"] == "mp4"
    assert video["course"]["name"] == "Compilers"
    assert video["module"]["title"] == "Front end"

    outsider = await client.get(f"/api/student/videos/{row.id}", headers=auth_header(make_user(role="student")))
    assert outsider.status_code == 403


async def test_video_details_survive_cdn_failure(client, student, auth_header, course, enrollment, db, monkeypatch):
    row = db.get(Video, uuid.UUID(course["videos"][1]["id"]))
    row.public_id = "compilers/videos/parsing"
    db.commit()
    monkeypatch.setattr(media, "get_video_details", lambda cdn, public_id: {"success": False, "error": "not found"})
    monkeypatch.setattr(media, "build_video_url", lambda cdn, public_id, **kw: None)

    r = await client.get(f"/api/student/videos/{row.id}", headers=auth_header(student))

    assert r.status_code == 200
    assert r.json()["video"]["cdn_details"] is None
    assert r.json()["video"]["stream_url"] == "https://cdn.example.com/2.mp4"
