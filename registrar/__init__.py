"""registrar/ -- Students, courses, subjects, enrollments and their audit trail.

Layer rule: registrar/ may import from core/ and auth/ (the users table is
written together with students). It does NOT import from api/ or
notifications/.
"""
