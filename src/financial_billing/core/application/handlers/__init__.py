from .financial_handlers import (  # noqa: F401
    CreateFinancialRecordHandler,
    MarkInstallmentPaidHandler,
    UpdatePaymentMethodHandler,
)
from .goal_handlers import GetMonthlyGoalHandler, UpsertMonthlyGoalHandler  # noqa: F401
from .query_handlers import (  # noqa: F401
    FutureReceivablesHandler,
    ListInstallmentsByStatusHandler,
    MonthlyFinancialSummaryHandler,
    MonthlyReportPdfHandler,
    PatientFinancialSummaryHandler,
    PatientFinancialTimelineHandler,
    PatientPaidByMonthHandler,
)
