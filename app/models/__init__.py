from .arc import Arc
from .goal import Goal
from .activity import Activity, ActivityStatus
from .chapter_template import ChapterTemplate
from .chapter import Chapter, ChapterStatus

__all__ = [
    "Arc",
    "Goal",
    "Activity",
    "ActivityStatus",
    "ChapterTemplate",
    "Chapter",
    "ChapterStatus",
]
