from __future__ import annotations

from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import Any

import structlog

from clinic_core.adapters.context.capabilities import PROCEDURE_ITEMS_TABLE, Capabilities
from clinic_core.adapters.observability.metrics import INSTALLMENTS_PAID
from clinic_core.core.application.cqrs import CommandHandler
from clinic_core.core.domain.entities.plan_item_entity import (
    PlanItem,
    calculate_item_profit,
    calculate_plan_totals,
)
from clinic_core.core.domain.events.exceptions import (
    IntegrityError,
    NotFoundError,
    RecordStoreError,
    SecondaryWriteError,
    TableMissingError,
    ValidationError,
)
from clinic_core.core.domain.repositories.record_store import RecordStore
from clinic_core.core.domain.services.event_dispatcher import EventDispatcher
from clinic_core.core.utils.date_utils import add_months, clinic_now
from clinic_core.core.utils.money import CENT, round2
from financial_billing.core.application.commands.financial_commands import (
    CreateFinancialRecordCommand,
    MarkInstallmentPaidCommand,
    UpdatePaymentMethodCommand,
)
from financial_billing.core.domain.entities.financial_record_entity import (
    FINANCIAL_RECORDS_TABLE,
    FinancialRecordEntity,
)
from financial_billing.core.domain.entities.installment_entity import (
    INSTALLMENTS_TABLE,
    InstallmentEntity,
    InstallmentStatus,
)
from financial_billing.core.domain.entities.payment_method import (
    INSTALLMENT_METHODS,
    PaymentMethod,
    parse_method,
    provider_for,
)
from financial_billing.core.domain.events.events import (
    FinancialRecordCreatedEvent,
    InstallmentPaidEvent,
    PaymentMethodChangedEvent,
)
from financial_billing.core.domain.repositories.fee_rule_repository import FeeRuleTable
from financial_billing.core.domain.services.fee_calculator import fee_for

log = structlog.get_logger(__name__)

RECORD_PENDING_STATUS = "pendente"


def split_installments(total: Decimal, count: int) -> list[Decimal]:
    """
    Divide em `count` parcelas de centavos: base truncada e os centavos
    restantes, um a um, nas primeiras parcelas. Nenhuma parcela fica
    negativa e a soma é sempre o total.
    """
    if count < 1:
        raise ValidationError("Quantidade de parcelas deve ser >= 1")
    total = round2(total)
    if total < 0:
        raise ValidationError("Total do registro não pode ser negativo")
    base = (total / count).quantize(CENT, rounding=ROUND_DOWN)
    extra_cents = int((total - base * count) / CENT)
    return [base + CENT if n < extra_cents else base for n in range(count)]


def installment_due_dates(first_payment_date: date, count: int) -> list[date]:
    return [add_months(first_payment_date, i) for i in range(count)]


def _require_method(value: str) -> PaymentMethod:
    method = parse_method(value)
    if method is None:
        raise ValidationError(f"Forma de pagamento inválida: {value!r}")
    return method


class CreateFinancialRecordHandler(CommandHandler[CreateFinancialRecordCommand]):
    """
    Registro financeiro + itens + parcelas.
    Ordem de desfazer: parcelas falham → remove itens e registro;
    itens falham → remove o registro (exceto tabela de itens ausente).
    """

    def __init__(
        self,
        store: RecordStore,
        dispatcher: EventDispatcher,
        capabilities: Capabilities,
        card_provider: str,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.capabilities = capabilities
        self.card_provider = card_provider

    async def handle(self, cmd: CreateFinancialRecordCommand) -> FinancialRecordEntity:
        if not cmd.items:
            raise ValidationError("É necessário pelo menos um item de procedimento")
        items = [i.to_plan_item() for i in cmd.items]
        cfg = cmd.installments
        method = _require_method(cfg.payment_method)
        totals = calculate_plan_totals(items)
        total_amount = round2(totals.total_final)
        amounts = split_installments(total_amount, cfg.count)
        dues = installment_due_dates(cfg.first_payment_date, cfg.count)

        record_row: dict[str, Any] = {
            "patient_id": cmd.patient_id,
            "client_name": cmd.patient_name,
            "procedure_type": cmd.procedure_type or " + ".join(i.name for i in items),
            "total_amount": total_amount,
            "total_cost": round2(totals.total_cost),
            "total_profit": round2(totals.total_profit),
            "profit_margin": round2(totals.margin),
            "total_installments": cfg.count,
            "payment_method": method.value,
            "first_payment_date": cfg.first_payment_date,
            "status": RECORD_PENDING_STATUS,
        }
        if provider := provider_for(method, self.card_provider):
            record_row["payment_provider"] = provider
        if cmd.appointment_id:
            record_row["appointment_id"] = cmd.appointment_id

        try:
            inserted = await self.store.insert_batch(FINANCIAL_RECORDS_TABLE, [record_row])
        except RecordStoreError as exc:
            log.error("financial_record.insert_failed", patient_id=cmd.patient_id, error=str(exc), exc_info=True)
            raise IntegrityError(f"Erro ao criar registro financeiro: {exc}") from exc
        if len(inserted) != 1:
            raise IntegrityError(f"Esperado 1 registro financeiro, obtido {len(inserted)}")
        record = FinancialRecordEntity.from_row(inserted[0])

        await self._insert_items(record.id, items)

        rows = [
            InstallmentEntity.new_row(record.id, n, amount, due, method.value)
            for n, (amount, due) in enumerate(zip(amounts, dues, strict=True), start=1)
        ]
        try:
            await self.store.insert_batch(INSTALLMENTS_TABLE, rows)
        except RecordStoreError as exc:
            log.error("financial_record.installments_failed", record_id=record.id, error=str(exc), exc_info=True)
            await self._rollback(record.id, with_items=True)
            raise IntegrityError(f"Erro ao criar parcelas: {exc}") from exc

        log.info(
            "financial_record.created",
            record_id=record.id,
            total_amount=str(total_amount),
            items=len(items),
            installments=cfg.count,
        )
        self.dispatcher.dispatch(
            FinancialRecordCreatedEvent(
                record_id=record.id,
                patient_id=cmd.patient_id,
                total_amount=total_amount,
                installments_count=cfg.count,
            )
        )
        return record

    async def _insert_items(self, record_id: str, items: list[PlanItem]) -> None:
        if not self.capabilities.has_table(PROCEDURE_ITEMS_TABLE):
            log.warning("financial_record.items_table_missing", record_id=record_id)
            return
        rows = [
            {
                "procedure_id": record_id,
                "procedure_catalog_id": item.catalog_id,
                "procedure_name_snapshot": item.name,
                "cost_price_snapshot": item.cost_price,
                "final_price_snapshot": item.final_price,
                "quantity": item.quantity,
                "discount": item.discount,
                "profit_snapshot": round2(calculate_item_profit(item)),
            }
            for item in items
        ]
        try:
            await self.store.insert_batch(PROCEDURE_ITEMS_TABLE, rows)
        except TableMissingError:
            log.warning("financial_record.items_table_missing", record_id=record_id)
        except RecordStoreError as exc:
            log.error("financial_record.items_failed", record_id=record_id, error=str(exc))
            await self._rollback(record_id, with_items=False)
            raise SecondaryWriteError(
                f"Erro ao inserir itens de procedimento: {exc}",
                record_id=record_id,
            ) from exc

    async def _rollback(self, record_id: str, *, with_items: bool) -> None:
        if with_items and self.capabilities.has_table(PROCEDURE_ITEMS_TABLE):
            try:
                await self.store.delete_where(PROCEDURE_ITEMS_TABLE, {"procedure_id": record_id})
            except RecordStoreError as exc:
                log.warning("financial_record.items_rollback_failed", record_id=record_id, error=str(exc))
        try:
            await self.store.delete_by_id(FINANCIAL_RECORDS_TABLE, record_id)
            log.warning("financial_record.rolled_back", record_id=record_id)
        except RecordStoreError as exc:
            log.error("financial_record.rollback_failed", record_id=record_id, error=str(exc))


class MarkInstallmentPaidHandler(CommandHandler[MarkInstallmentPaidCommand]):
    """Marca a parcela como paga e congela percentual/taxa/líquido."""

    def __init__(
        self,
        store: RecordStore,
        fee_rules: FeeRuleTable,
        dispatcher: EventDispatcher,
        card_provider: str,
    ):
        self.store = store
        self.fee_rules = fee_rules
        self.dispatcher = dispatcher
        self.card_provider = card_provider

    async def handle(self, cmd: MarkInstallmentPaidCommand) -> InstallmentEntity:
        method = _require_method(cmd.payment_method)
        rows = await self.store.select(INSTALLMENTS_TABLE, filters={"id": cmd.installment_id})
        if not rows:
            raise NotFoundError(f"Parcela {cmd.installment_id} não encontrada")
        installment = InstallmentEntity.from_row(rows[0])
        if installment.is_paid:
            raise ValidationError(f"Parcela {cmd.installment_id} já está paga")

        record_rows = await self.store.select(FINANCIAL_RECORDS_TABLE, filters={"id": installment.record_id})
        if not record_rows:
            log.warning("installment.record_not_found", record_id=installment.record_id)
        total_installments = FinancialRecordEntity.from_row(record_rows[0]).total_installments if record_rows else 1

        provider = provider_for(method, self.card_provider)
        rules = await self.fee_rules.list_rules(provider) if provider else []
        count = total_installments if method in INSTALLMENT_METHODS else None
        pct, fee_net = fee_for(installment.gross_amount, method, count, rules)

        now = clinic_now()
        installment.mark_paid(
            method=method.value,
            provider=provider,
            fee_percent=pct,
            fee_amount=fee_net.fee_amount,
            net_amount=fee_net.net_amount,
            paid_date=now.date(),
            paid_at=now,
        )
        # só atualiza se ainda estiver pendente: o snapshot nunca é reescrito
        updated = await self.store.update_where(
            INSTALLMENTS_TABLE,
            {"id": cmd.installment_id, "status": InstallmentStatus.PENDING.value},
            installment.paid_fields(),
        )
        if not updated:
            # outro pagamento concorrente gravou primeiro
            log.warning("installment.pay_conflict", installment_id=cmd.installment_id, method=method.value)
            raise ValidationError(f"Parcela {cmd.installment_id} já está paga")
        INSTALLMENTS_PAID.labels(method.value).inc()
        log.info(
            "installment.paid",
            installment_id=cmd.installment_id,
            method=method.value,
            provider=provider,
            fee_percent=str(pct),
            fee_amount=str(fee_net.fee_amount),
            net_amount=str(fee_net.net_amount),
        )
        self.dispatcher.dispatch(
            InstallmentPaidEvent(
                installment_id=cmd.installment_id,
                record_id=installment.record_id,
                payment_method=method.value,
                fee_percent=pct,
                fee_amount=fee_net.fee_amount,
                net_amount=fee_net.net_amount,
            )
        )
        return installment


class UpdatePaymentMethodHandler(CommandHandler[UpdatePaymentMethodCommand]):
    """Troca o método do registro e das parcelas **pendentes**; pagas mantêm o snapshot."""

    def __init__(self, store: RecordStore, dispatcher: EventDispatcher, card_provider: str):
        self.store = store
        self.dispatcher = dispatcher
        self.card_provider = card_provider

    async def handle(self, cmd: UpdatePaymentMethodCommand) -> None:
        method = _require_method(cmd.payment_method)
        fields: dict[str, Any] = {"payment_method": method.value}
        if provider := provider_for(method, self.card_provider):
            fields["payment_provider"] = provider

        await self.store.update_by_id(FINANCIAL_RECORDS_TABLE, cmd.record_id, fields)
        await self.store.update_where(
            INSTALLMENTS_TABLE,
            {"procedure_id": cmd.record_id, "status": InstallmentStatus.PENDING.value},
            {"payment_method": method.value},
        )
        log.info("financial_record.payment_method_updated", record_id=cmd.record_id, method=method.value)
        self.dispatcher.dispatch(PaymentMethodChangedEvent(record_id=cmd.record_id, payment_method=method.value))
