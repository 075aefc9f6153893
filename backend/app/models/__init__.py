from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.subject import Subject  # noqa: F401
from app.models.timetable_entry import DayOfWeek, TimetableEntry  # noqa: F401
from app.models.timetable_revision import TimetableRevision  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
