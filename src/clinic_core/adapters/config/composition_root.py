from dependency_injector import containers, providers

container = None


def _log_sync_notice(event) -> None:
    import structlog

    if event.notice:
        structlog.get_logger("gcal_sync").warning(
            "gcal_sync.notice",
            notice=event.notice,
            recurrence_group_id=event.recurrence_group_id,
            failed=event.failed,
            total=event.total,
        )


def setup_di_container_from_settings(settings, *, record_store=None, capabilities=None, calendar_notifier=None):  # noqa: PLR0915
    """
    Inicializa o DI container a partir do módulo de settings.

    `record_store`, `capabilities` e `calendar_notifier` substituem os
    providers padrão (ex.: resultado da sondagem de tabelas ou fakes).
    """
    global container  # noqa: PLW0603
    if container is not None:
        import structlog
        structlog.get_logger().debug("DI container já inicializado.")
        return container

    # ------- IMPORTS DE INFRA E ADAPTERS -------
    import structlog

    # Agenda
    from appointment_scheduling.adapters.notifiers.registry import get_calendar_notifier
    from appointment_scheduling.core.application.commands.appointment_commands import (
        CreateAppointmentCommand,
        CreateRecurringSeriesCommand,
        MarkAppointmentStatusCommand,
        RetryCalendarSyncCommand,
    )
    from appointment_scheduling.core.application.handlers import (
        CreateAppointmentHandler,
        CreateRecurringSeriesHandler,
        ListAppointmentsWithProceduresHandler,
        MarkAppointmentStatusHandler,
        RetryCalendarSyncHandler,
    )
    from appointment_scheduling.core.application.queries.appointment_queries import (
        ListAppointmentsWithProceduresQuery,
    )
    from appointment_scheduling.core.application.services.appointment_service import AppointmentService
    from appointment_scheduling.core.application.services.calendar_sync_service import CalendarSyncService
    from appointment_scheduling.core.domain.events.events import CalendarSyncCompletedEvent

    # Núcleo compartilhado
    from clinic_core.adapters.context.capabilities import Capabilities
    from clinic_core.adapters.repositories.supabase_record_store import SupabaseRecordStore
    from clinic_core.core.application.cqrs import BaseService, CommandBus, QueryBus
    from clinic_core.core.domain.services.event_dispatcher import EventDispatcher

    # Financeiro
    from financial_billing.adapters.repositories.fee_rule_repo_impl import FeeRuleRepoImpl
    from financial_billing.core.application.commands.financial_commands import (
        CreateFinancialRecordCommand,
        MarkInstallmentPaidCommand,
        UpdatePaymentMethodCommand,
        UpsertMonthlyGoalCommand,
    )
    from financial_billing.core.application.handlers import (
        CreateFinancialRecordHandler,
        FutureReceivablesHandler,
        GetMonthlyGoalHandler,
        ListInstallmentsByStatusHandler,
        MarkInstallmentPaidHandler,
        MonthlyFinancialSummaryHandler,
        MonthlyReportPdfHandler,
        PatientFinancialSummaryHandler,
        PatientFinancialTimelineHandler,
        PatientPaidByMonthHandler,
        UpdatePaymentMethodHandler,
        UpsertMonthlyGoalHandler,
    )
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

    class Container(containers.DeclarativeContainer):
        config = providers.Configuration()
        logger = providers.Object(structlog.get_logger())

        # Infra
        event_dispatcher = providers.Singleton(EventDispatcher)
        command_bus = providers.Singleton(CommandBus)
        query_bus = providers.Singleton(QueryBus)
        record_store = providers.Singleton(
            SupabaseRecordStore,
            base_url=config.supabase.url,
            api_key=config.supabase.key,
            timeout=config.supabase.timeout,
        )
        calendar_notifier = providers.Singleton(get_calendar_notifier, provider="gcal")
        # Sem sondagem: assume todas as tabelas opcionais presentes
        capabilities = providers.Object(Capabilities())

        # Repositórios
        fee_rule_repo = providers.Singleton(FeeRuleRepoImpl, store=record_store, capabilities=capabilities)

        # Serviços de negócio
        sync_service = providers.Singleton(
            CalendarSyncService,
            store=record_store,
            notifier=calendar_notifier,
            dispatcher=event_dispatcher,
            batch_size=config.gcal_sync_batch_size,
        )
        appointment_service = providers.Singleton(
            AppointmentService,
            store=record_store,
            sync_service=sync_service,
            dispatcher=event_dispatcher,
            capabilities=capabilities,
        )

        # Facade exposto aos chamadores
        clinic_service = providers.Singleton(BaseService, command_bus=command_bus, query_bus=query_bus)

        # Handlers de agenda
        create_appointment_handler = providers.Factory(CreateAppointmentHandler, service=appointment_service)
        create_recurring_series_handler = providers.Factory(CreateRecurringSeriesHandler, service=appointment_service)
        mark_appointment_status_handler = providers.Factory(
            MarkAppointmentStatusHandler,
            store=record_store,
            dispatcher=event_dispatcher,
        )
        retry_calendar_sync_handler = providers.Factory(
            RetryCalendarSyncHandler,
            store=record_store,
            sync_service=sync_service,
        )
        list_appointments_handler = providers.Factory(
            ListAppointmentsWithProceduresHandler,
            store=record_store,
            capabilities=capabilities,
        )

        # Handlers financeiros
        create_financial_record_handler = providers.Factory(
            CreateFinancialRecordHandler,
            store=record_store,
            dispatcher=event_dispatcher,
            capabilities=capabilities,
            card_provider=config.fee_provider,
        )
        mark_installment_paid_handler = providers.Factory(
            MarkInstallmentPaidHandler,
            store=record_store,
            fee_rules=fee_rule_repo,
            dispatcher=event_dispatcher,
            card_provider=config.fee_provider,
        )
        update_payment_method_handler = providers.Factory(
            UpdatePaymentMethodHandler,
            store=record_store,
            dispatcher=event_dispatcher,
            card_provider=config.fee_provider,
        )
        get_monthly_goal_handler = providers.Factory(GetMonthlyGoalHandler, store=record_store, capabilities=capabilities)
        upsert_monthly_goal_handler = providers.Factory(
            UpsertMonthlyGoalHandler,
            store=record_store,
            capabilities=capabilities,
        )
        monthly_summary_handler = providers.Factory(
            MonthlyFinancialSummaryHandler,
            store=record_store,
            fee_rules=fee_rule_repo,
            card_provider=config.fee_provider,
        )
        patient_summary_handler = providers.Factory(
            PatientFinancialSummaryHandler,
            store=record_store,
            fee_rules=fee_rule_repo,
            card_provider=config.fee_provider,
        )
        patient_paid_by_month_handler = providers.Factory(
            PatientPaidByMonthHandler,
            store=record_store,
            fee_rules=fee_rule_repo,
            card_provider=config.fee_provider,
        )
        future_receivables_handler = providers.Factory(
            FutureReceivablesHandler,
            store=record_store,
            fee_rules=fee_rule_repo,
            card_provider=config.fee_provider,
        )
        patient_timeline_handler = providers.Factory(
            PatientFinancialTimelineHandler,
            store=record_store,
            fee_rules=fee_rule_repo,
            card_provider=config.fee_provider,
            capabilities=capabilities,
        )
        installments_by_status_handler = providers.Factory(
            ListInstallmentsByStatusHandler,
            store=record_store,
            fee_rules=fee_rule_repo,
            card_provider=config.fee_provider,
        )
        monthly_report_pdf_handler = providers.Factory(
            MonthlyReportPdfHandler,
            summary_handler=monthly_summary_handler,
            goal_handler=get_monthly_goal_handler,
        )

        def init(self):
            # Registrar comandos no CommandBus
            bus = self.command_bus()
            bus.register(CreateAppointmentCommand, self.create_appointment_handler())
            bus.register(CreateRecurringSeriesCommand, self.create_recurring_series_handler())
            bus.register(MarkAppointmentStatusCommand, self.mark_appointment_status_handler())
            bus.register(RetryCalendarSyncCommand, self.retry_calendar_sync_handler())
            bus.register(CreateFinancialRecordCommand, self.create_financial_record_handler())
            bus.register(MarkInstallmentPaidCommand, self.mark_installment_paid_handler())
            bus.register(UpdatePaymentMethodCommand, self.update_payment_method_handler())
            bus.register(UpsertMonthlyGoalCommand, self.upsert_monthly_goal_handler())

            # Registrar queries no QueryBus
            qb = self.query_bus()
            qb.register(ListAppointmentsWithProceduresQuery, self.list_appointments_handler())
            qb.register(MonthlyFinancialSummaryQuery, self.monthly_summary_handler())
            qb.register(PatientFinancialSummaryQuery, self.patient_summary_handler())
            qb.register(PatientPaidByMonthQuery, self.patient_paid_by_month_handler())
            qb.register(FutureReceivablesQuery, self.future_receivables_handler())
            qb.register(GetMonthlyGoalQuery, self.get_monthly_goal_handler())
            qb.register(MonthlyReportPdfQuery, self.monthly_report_pdf_handler())
            qb.register(PatientFinancialTimelineQuery, self.patient_timeline_handler())
            qb.register(ListInstallmentsByStatusQuery, self.installments_by_status_handler())

            # Aviso de falhas de sincronização com o calendário
            self.event_dispatcher().subscribe(CalendarSyncCompletedEvent, _log_sync_notice)

    # ------- INSTANCIAÇÃO E CONFIG -------
    container = Container()
    container.config.supabase.url.from_value(settings.SUPABASE_URL)
    container.config.supabase.key.from_value(settings.SUPABASE_KEY)
    container.config.supabase.timeout.from_value(settings.SUPABASE_TIMEOUT)
    container.config.fee_provider.from_value(settings.FEE_PROVIDER)
    container.config.gcal_sync_batch_size.from_value(settings.GCAL_SYNC_BATCH_SIZE)

    if record_store is not None:
        container.record_store.override(providers.Object(record_store))
    if capabilities is not None:
        container.capabilities.override(providers.Object(capabilities))
    if calendar_notifier is not None:
        container.calendar_notifier.override(providers.Object(calendar_notifier))

    # Inicializa os buses com todos os handlers
    Container.init(container)
    return container


async def bootstrap_container(settings):
    """Configura o logging, sonda as tabelas opcionais uma vez e monta o container com o resultado."""
    from clinic_core.adapters.context.capabilities import CapabilityDetector
    from clinic_core.adapters.repositories.supabase_record_store import SupabaseRecordStore
    from config.structlog_config import configure_logging

    if container is not None:
        return container
    configure_logging(level=settings.LOG_LEVEL, json_logs=settings.JSON_LOGS)
    store = SupabaseRecordStore(
        base_url=settings.SUPABASE_URL,
        api_key=settings.SUPABASE_KEY,
        timeout=settings.SUPABASE_TIMEOUT,
    )
    capabilities = await CapabilityDetector.detect(store)
    return setup_di_container_from_settings(settings, record_store=store, capabilities=capabilities)
