"""Core logic for the coaching client.

F2: onboarding (step resolution and screen guards)
F3: scheduling, countdown, lifecycle
F4: dashboard, syllabus, study_center

weights is shared by the schemas and the exam-selection flow.
"""

__all__ = [
    "onboarding",
    "scheduling",
    "countdown",
    "lifecycle",
    "dashboard",
    "syllabus",
    "study_center",
    "weights",
]
