# Import all the models, so that Base has them before being
# imported by Alembic
from app.db.base_class import Base
from app.models.scheduling import ScheduleJob

__all__ = ["Base", "ScheduleJob"]  # noqa: F401
