from cohort_tracker.routes.assignments import router as assignments_router
from cohort_tracker.routes.auth import router as auth_router
from cohort_tracker.routes.batches import router as batches_router
from cohort_tracker.routes.organizations import router as organizations_router
from cohort_tracker.routes.projects import router as projects_router
from cohort_tracker.routes.public import router as public_router
from cohort_tracker.routes.student_projects import router as student_projects_router
from cohort_tracker.routes.users import router as users_router

__all__ = [
    "assignments_router",
    "auth_router",
    "batches_router",
    "organizations_router",
    "projects_router",
    "public_router",
    "student_projects_router",
    "users_router",
]
