from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from clinic_core.core.domain.entities._base import EntityMixin


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED_WITH_SALE = "completed_with_sale"
    COMPLETED_NO_SALE = "completed_no_sale"
    CANCELLED = "cancelled"


class GcalSyncStatus(str, Enum):
    UNSYNCED = "unsynced"
    SYNCED = "synced"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class AppointmentOccurrence(EntityMixin):
    """Janela de tempo de uma ocorrência; `index` começa em 1."""
    start_time: datetime
    end_time: datetime
    index: int
    total_count: int

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)


APPOINTMENTS_TABLE = "appointments"
