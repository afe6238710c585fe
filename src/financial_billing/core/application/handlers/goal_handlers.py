import structlog

from clinic_core.adapters.context.capabilities import FINANCIAL_GOALS_TABLE, Capabilities
from clinic_core.core.application.cqrs import CommandHandler, QueryHandler
from clinic_core.core.domain.events.exceptions import TableMissingError
from clinic_core.core.domain.repositories.record_store import RecordStore
from clinic_core.core.utils.date_utils import parse_month_year
from clinic_core.core.utils.money import round2
from financial_billing.core.application.commands.financial_commands import UpsertMonthlyGoalCommand
from financial_billing.core.application.queries.financial_queries import GetMonthlyGoalQuery
from financial_billing.core.domain.entities.monthly_goal_entity import MonthlyGoalEntity, MonthlyGoalResult

log = structlog.get_logger(__name__)


class GetMonthlyGoalHandler(QueryHandler[GetMonthlyGoalQuery, MonthlyGoalResult]):
    def __init__(self, store: RecordStore, capabilities: Capabilities):
        self.store = store
        self.capabilities = capabilities

    async def handle(self, query: GetMonthlyGoalQuery) -> MonthlyGoalResult:
        parse_month_year(query.month_year)
        if not self.capabilities.has_table(FINANCIAL_GOALS_TABLE):
            return MonthlyGoalResult(goal=None, table_missing=True)
        try:
            rows = await self.store.select(FINANCIAL_GOALS_TABLE, filters={"month_year": query.month_year})
        except TableMissingError:
            log.warning("financial_goal.table_missing", month_year=query.month_year)
            return MonthlyGoalResult(goal=None, table_missing=True)
        return MonthlyGoalResult(goal=MonthlyGoalEntity.from_row(rows[0]) if rows else None)


class UpsertMonthlyGoalHandler(CommandHandler[UpsertMonthlyGoalCommand]):
    """Uma meta por mês (`month_year` é a chave de conflito)."""

    def __init__(self, store: RecordStore, capabilities: Capabilities):
        self.store = store
        self.capabilities = capabilities

    async def handle(self, cmd: UpsertMonthlyGoalCommand) -> MonthlyGoalResult:
        parse_month_year(cmd.month_year)
        if not self.capabilities.has_table(FINANCIAL_GOALS_TABLE):
            log.warning("financial_goal.table_missing", month_year=cmd.month_year)
            return MonthlyGoalResult(goal=None, table_missing=True)
        row = {
            "month_year": cmd.month_year,
            "target_gross": round2(cmd.target_gross),
            "target_net": round2(cmd.target_net),
            "target_profit": round2(cmd.target_profit),
        }
        try:
            saved = await self.store.upsert(FINANCIAL_GOALS_TABLE, row, on_conflict="month_year")
        except TableMissingError:
            log.warning("financial_goal.table_missing", month_year=cmd.month_year)
            return MonthlyGoalResult(goal=None, table_missing=True)
        log.info("financial_goal.saved", month_year=cmd.month_year, target_gross=str(row["target_gross"]))
        return MonthlyGoalResult(goal=MonthlyGoalEntity.from_row(saved or row))
