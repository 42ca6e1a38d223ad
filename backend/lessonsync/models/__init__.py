from lessonsync.models.student import Student  # noqa: F401
from lessonsync.models.teacher import Teacher  # noqa: F401
