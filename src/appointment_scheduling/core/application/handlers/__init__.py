from .appointment_handlers import (  # noqa: F401
    CreateAppointmentHandler,
    CreateRecurringSeriesHandler,
    MarkAppointmentStatusHandler,
    RetryCalendarSyncHandler,
)
from .query_handlers import ListAppointmentsWithProceduresHandler  # noqa: F401
