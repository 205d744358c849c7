from .user import User
from .refresh_token import RefreshToken
from .email_token import EmailVerificationToken
from .password_reset_token import PasswordResetToken
from coursehub.models.course import Course
from coursehub.models.module import CourseModule
from coursehub.models.video import Video
from coursehub.models.assignment import Assignment
from coursehub.models.enrollment import Enrollment
from coursehub.models.assignment_submission import AssignmentSubmission
from coursehub.models.video_watch import VideoWatch
from coursehub.models.certificate import Certificate
