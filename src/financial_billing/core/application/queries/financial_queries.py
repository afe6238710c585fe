from dataclasses import dataclass

from clinic_core.core.application.cqrs import QueryDTO


@dataclass(frozen=True, slots=True)
class MonthlyFinancialSummaryQuery(QueryDTO):
    month_year: str                 # YYYY-MM


@dataclass(frozen=True, slots=True)
class PatientFinancialSummaryQuery(QueryDTO):
    patient_id: str


@dataclass(frozen=True, slots=True)
class PatientPaidByMonthQuery(QueryDTO):
    patient_id: str
    month_year: str


@dataclass(frozen=True, slots=True)
class FutureReceivablesQuery(QueryDTO):
    months: int = 6


@dataclass(frozen=True, slots=True)
class GetMonthlyGoalQuery(QueryDTO):
    month_year: str


@dataclass(frozen=True, slots=True)
class MonthlyReportPdfQuery(QueryDTO):
    month_year: str
    clinic_name: str | None = None


@dataclass(frozen=True, slots=True)
class PatientFinancialTimelineQuery(QueryDTO):
    patient_id: str


@dataclass(frozen=True, slots=True)
class ListInstallmentsByStatusQuery(QueryDTO):
    status: str | None = None       # None = todas
    patient_id: str | None = None
