"""
Fábrica de notifiers de calendário.
"""
from functools import lru_cache
from typing import Literal

from appointment_scheduling.adapters.notifiers.gcal_edge_notifier import SupabaseEdgeCalendarNotifier
from appointment_scheduling.core.domain.repositories.calendar_notifier import CalendarNotifier
from config import settings


@lru_cache
def get_gcal_notifier() -> CalendarNotifier:
    return SupabaseEdgeCalendarNotifier(
        supabase_url=settings.SUPABASE_URL,
        api_key=settings.SUPABASE_KEY,
        timeout=settings.SUPABASE_TIMEOUT,
    )


def get_calendar_notifier(provider: Literal["gcal"] = "gcal") -> CalendarNotifier:
    """
    Retorna o notifier de calendário do provedor.

    - 'gcal' → SupabaseEdgeCalendarNotifier
    """
    if provider == "gcal":
        return get_gcal_notifier()
    raise ValueError(f"Provedor de calendário desconhecido: {provider}")
