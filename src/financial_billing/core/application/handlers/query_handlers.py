from dataclasses import asdict

import structlog

from clinic_core.adapters.context.capabilities import PROCEDURE_ITEMS_TABLE, Capabilities
from clinic_core.core.application.cqrs import QueryHandler
from clinic_core.core.domain.events.exceptions import TableMissingError, ValidationError
from clinic_core.core.domain.repositories.record_store import RecordStore, Row
from clinic_core.core.utils.date_utils import add_months, last_day_of_month, month_bounds, today_in_clinic
from financial_billing.adapters.reports.monthly_report_pdf import MonthlyReportPdf
from financial_billing.core.application.dtos.financial_dto import (
    FinancialRecordDTO,
    FinancialRecordItemDTO,
    FinancialRecordWithInstallmentsDTO,
    GrossNetBucket,
    InstallmentDTO,
    MonthlyFinancialSummary,
    PatientFinancialSummary,
    PatientFinancialTimeline,
    ReceivableBucket,
)
from financial_billing.core.application.handlers.goal_handlers import GetMonthlyGoalHandler
from financial_billing.core.application.queries.financial_queries import (
    FutureReceivablesQuery,
    GetMonthlyGoalQuery,
    ListInstallmentsByStatusQuery,
    MonthlyFinancialSummaryQuery,
    MonthlyReportPdfQuery,
    PatientFinancialSummaryQuery,
    PatientFinancialTimelineQuery,
    PatientPaidByMonthQuery,
)
from financial_billing.core.application.services.aggregation_service import FinancialAggregationService
from financial_billing.core.domain.entities.financial_record_entity import (
    FINANCIAL_RECORDS_TABLE,
    FinancialRecordEntity,
)
from financial_billing.core.domain.entities.installment_entity import (
    INSTALLMENTS_TABLE,
    InstallmentEntity,
    InstallmentStatus,
)
from financial_billing.core.domain.repositories.fee_rule_repository import FeeRuleTable

log = structlog.get_logger(__name__)


class _FinancialQueryBase:
    """Carrega parcelas, registros e regras de taxa (uma vez por consulta)."""

    def __init__(
        self,
        store: RecordStore,
        fee_rules: FeeRuleTable,
        card_provider: str,
        capabilities: Capabilities | None = None,
    ):
        self.store = store
        self.fee_rules = fee_rules
        self.card_provider = card_provider
        self.capabilities = capabilities or Capabilities()

    async def _aggregator(self) -> FinancialAggregationService:
        return FinancialAggregationService(await self.fee_rules.list_rules(self.card_provider))

    async def _records_for(self, installments: list[InstallmentEntity]) -> dict[str, FinancialRecordEntity]:
        ids = sorted({i.record_id for i in installments if i.record_id})
        if not ids:
            return {}
        rows = await self.store.select(FINANCIAL_RECORDS_TABLE, in_={"id": ids})
        return {str(r["id"]): FinancialRecordEntity.from_row(r) for r in rows}

    async def _patient_record_rows(self, patient_id: str, order_by: str | None = None) -> list[Row]:
        return await self.store.select(FINANCIAL_RECORDS_TABLE, filters={"patient_id": patient_id}, order_by=order_by)

    async def _patient_data(
        self, patient_id: str
    ) -> tuple[list[InstallmentEntity], dict[str, FinancialRecordEntity]]:
        record_rows = await self._patient_record_rows(patient_id)
        records = {str(r["id"]): FinancialRecordEntity.from_row(r) for r in record_rows}
        if not records:
            return [], {}
        rows = await self.store.select(
            INSTALLMENTS_TABLE,
            in_={"procedure_id": list(records)},
            order_by="due_date",
        )
        return _installments(rows), records


def _installments(rows: list[Row]) -> list[InstallmentEntity]:
    return [InstallmentEntity.from_row(r) for r in rows]


class MonthlyFinancialSummaryHandler(
    _FinancialQueryBase, QueryHandler[MonthlyFinancialSummaryQuery, MonthlyFinancialSummary]
):
    async def handle(self, query: MonthlyFinancialSummaryQuery) -> MonthlyFinancialSummary:
        first, last = month_bounds(query.month_year)
        paid_rows = await self.store.query_by_time_range(
            INSTALLMENTS_TABLE,
            "paid_date",
            first,
            last,
            filters={"status": InstallmentStatus.PAID.value},
        )
        # todas as pendentes: as vencidas entram em "em atraso" independente do mês
        pending_rows = await self.store.select(
            INSTALLMENTS_TABLE,
            filters={"status": InstallmentStatus.PENDING.value},
            order_by="due_date",
        )
        installments = _installments(paid_rows) + _installments(pending_rows)
        records = await self._records_for(installments)
        summary = (await self._aggregator()).monthly_summary(
            query.month_year, installments, records, today_in_clinic()
        )
        log.info(
            "financial.monthly_summary",
            month_year=query.month_year,
            paid=str(summary.paid.gross),
            pending=str(summary.pending.gross),
            overdue=str(summary.overdue.gross),
        )
        return summary


class PatientFinancialSummaryHandler(
    _FinancialQueryBase, QueryHandler[PatientFinancialSummaryQuery, PatientFinancialSummary]
):
    async def handle(self, query: PatientFinancialSummaryQuery) -> PatientFinancialSummary:
        installments, records = await self._patient_data(query.patient_id)
        return (await self._aggregator()).patient_summary(
            query.patient_id, installments, records, today_in_clinic()
        )


class PatientPaidByMonthHandler(_FinancialQueryBase, QueryHandler[PatientPaidByMonthQuery, GrossNetBucket]):
    async def handle(self, query: PatientPaidByMonthQuery) -> GrossNetBucket:
        month_bounds(query.month_year)
        installments, records = await self._patient_data(query.patient_id)
        return (await self._aggregator()).paid_in_month(query.month_year, installments, records)


class FutureReceivablesHandler(_FinancialQueryBase, QueryHandler[FutureReceivablesQuery, list[ReceivableBucket]]):
    async def handle(self, query: FutureReceivablesQuery) -> list[ReceivableBucket]:
        today = today_in_clinic()
        months = max(1, query.months)
        last_month = add_months(today.replace(day=1), months - 1)
        horizon = last_month.replace(day=last_day_of_month(last_month.year, last_month.month))
        rows = await self.store.query_by_time_range(
            INSTALLMENTS_TABLE,
            "due_date",
            None,
            horizon,
            filters={"status": InstallmentStatus.PENDING.value},
        )
        installments = _installments(rows)
        records = await self._records_for(installments)
        return (await self._aggregator()).future_receivables(installments, records, today, months)


class PatientFinancialTimelineHandler(
    _FinancialQueryBase, QueryHandler[PatientFinancialTimelineQuery, PatientFinancialTimeline]
):
    """Registros do paciente (mais recentes primeiro) com itens e parcelas por vencimento."""

    async def handle(self, query: PatientFinancialTimelineQuery) -> PatientFinancialTimeline:
        record_rows = await self._patient_record_rows(query.patient_id, order_by="created_at.desc")
        if not record_rows:
            return PatientFinancialTimeline(patient_id=query.patient_id)
        records = [FinancialRecordEntity.from_row(r) for r in record_rows]
        ids = [str(r.id) for r in records]

        installment_rows = await self.store.select(INSTALLMENTS_TABLE, in_={"procedure_id": ids}, order_by="due_date")
        installments: dict[str, list[InstallmentDTO]] = {}
        for inst in _installments(installment_rows):
            installments.setdefault(str(inst.record_id), []).append(InstallmentDTO.model_validate(asdict(inst)))
        items = await self._items_by_record(ids)

        log.info("financial.patient_timeline", patient_id=query.patient_id, records=len(records))
        return PatientFinancialTimeline(
            patient_id=query.patient_id,
            patient_name=records[0].client_name,
            records=[
                FinancialRecordWithInstallmentsDTO(
                    record=FinancialRecordDTO.model_validate(asdict(record)),
                    items=items.get(str(record.id), []),
                    installments=installments.get(str(record.id), []),
                )
                for record in records
            ],
        )

    async def _items_by_record(self, record_ids: list[str]) -> dict[str, list[FinancialRecordItemDTO]]:
        if not self.capabilities.has_table(PROCEDURE_ITEMS_TABLE):
            return {}
        try:
            rows = await self.store.select(
                PROCEDURE_ITEMS_TABLE,
                in_={"procedure_id": record_ids},
                order_by="created_at",
            )
        except TableMissingError:
            log.warning("financial.items_table_missing", records=len(record_ids))
            return {}
        grouped: dict[str, list[FinancialRecordItemDTO]] = {}
        for row in rows:
            grouped.setdefault(str(row["procedure_id"]), []).append(FinancialRecordItemDTO.model_validate(row))
        return grouped


class ListInstallmentsByStatusHandler(
    _FinancialQueryBase, QueryHandler[ListInstallmentsByStatusQuery, list[InstallmentDTO]]
):
    async def handle(self, query: ListInstallmentsByStatusQuery) -> list[InstallmentDTO]:
        filters: dict[str, str] = {}
        if query.status is not None:
            try:
                filters["status"] = InstallmentStatus(query.status).value
            except ValueError as exc:
                raise ValidationError(f"Status de parcela inválido: {query.status!r}") from exc

        in_ = None
        if query.patient_id:
            record_rows = await self._patient_record_rows(query.patient_id)
            if not record_rows:
                return []
            in_ = {"procedure_id": [str(r["id"]) for r in record_rows]}

        rows = await self.store.select(INSTALLMENTS_TABLE, filters=filters or None, in_=in_, order_by="due_date")
        return [InstallmentDTO.model_validate(asdict(i)) for i in _installments(rows)]


class MonthlyReportPdfHandler(QueryHandler[MonthlyReportPdfQuery, bytes]):
    """Resumo do mês + meta (se houver) renderizados em PDF."""

    def __init__(
        self,
        summary_handler: MonthlyFinancialSummaryHandler,
        goal_handler: GetMonthlyGoalHandler,
        default_clinic_name: str = "Clínica",
    ):
        self.summary_handler = summary_handler
        self.goal_handler = goal_handler
        self.default_clinic_name = default_clinic_name

    async def handle(self, query: MonthlyReportPdfQuery) -> bytes:
        summary = await self.summary_handler.handle(MonthlyFinancialSummaryQuery(month_year=query.month_year))
        goal = await self.goal_handler.handle(GetMonthlyGoalQuery(month_year=query.month_year))
        report = MonthlyReportPdf(clinic_name=query.clinic_name or self.default_clinic_name)
        return report.build(summary, goal.goal, generated_on=today_in_clinic())
