"""
registrar/seed.py -- Default catalog for a fresh installation.

Used by `python main.py seed`. Seeding is skipped entirely when any course
already exists, so running it twice is harmless.
"""

import logging

from registrar.models import Course, Subject
from registrar.store import RegistrarStore

logger = logging.getLogger("enrollment.registrar")

DEFAULT_COURSES = [
    Course(
        code="BSIS",
        name="Bachelor of Science in Information System",
        description="Focuses on the study of computer utilization and software development.",
    ),
    Course(
        code="BPED",
        name="Bachelor of Physical Education",
        description="Prepares students for teaching in schools.",
    ),
]

# (code, name, units, schedule, instructor, course code or None for general education)
DEFAULT_SUBJECTS = [
    ("IS 101", "Introduction to Computing", 3, "MWF 8:00-9:00 AM", "Prof. Santos", "BSIS"),
    ("IS 102", "Computer Programming 1", 3, "TTh 9:00-10:30 AM", "Prof. Reyes", "BSIS"),
    ("GE 1", "Understanding the Self", 3, "MWF 10:00-11:00 AM", "Prof. Dizon", None),
    ("GE 2", "Readings in Philippine History", 3, "TTh 1:00-2:30 PM", "Prof. Mercado", None),
    ("PE 1", "Physical Fitness and Gymnastics", 2, "Sat 8:00-10:00 AM", "Coach Cruz", "BPED"),
    ("NSTP 1", "ROTC 1", 3, "Sat 1:00-4:00 PM", "Mr. Garcia", None),
]


def seed_catalog(store: RegistrarStore) -> tuple[int, int]:
    """Insert the default courses and subjects. Returns (courses_added, subjects_added)."""
    if store.list_courses():
        logger.info("Catalog already present, skipping seed")
        return 0, 0

    course_ids: dict[str, int] = {}
    for course in DEFAULT_COURSES:
        created = store.create_course(Course(code=course.code, name=course.name, description=course.description))
        course_ids[created.code] = created.id

    for code, name, units, schedule, instructor, course_code in DEFAULT_SUBJECTS:
        store.create_subject(
            Subject(
                code=code,
                name=name,
                units=units,
                schedule=schedule,
                instructor=instructor,
                course_id=course_ids.get(course_code) if course_code else None,
                year_level=1,
            )
        )

    logger.info("Seeded %d courses and %d subjects", len(DEFAULT_COURSES), len(DEFAULT_SUBJECTS))
    return len(DEFAULT_COURSES), len(DEFAULT_SUBJECTS)
