from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

registry = CollectorRegistry()

# ───────────────────────────────────────────────
# Store de registros
# ───────────────────────────────────────────────
STORE_REQUEST_SECONDS = Histogram(
    "clinic_store_request_seconds",
    "Latência das requisições ao store de registros",
    ["table", "operation"],
    registry=registry,
)
STORE_ERRORS = Counter(
    "clinic_store_errors_total",
    "Erros devolvidos pelo store de registros",
    ["table", "operation"],
    registry=registry,
)

# ───────────────────────────────────────────────
# Agenda / recorrência
# ───────────────────────────────────────────────
SERIES_CREATED = Counter(
    "clinic_recurring_series_created_total",
    "Séries recorrentes criadas",
    ["rule_kind"],
    registry=registry,
)
OCCURRENCES_CREATED = Counter(
    "clinic_occurrences_created_total",
    "Agendamentos criados (avulsos ou de séries)",
    registry=registry,
)
CALENDAR_SYNC_TOTAL = Counter(
    "clinic_calendar_sync_total",
    "Resultados da sincronização com o calendário externo",
    ["status"],
    registry=registry,
)
CALENDAR_REQUEST_SECONDS = Histogram(
    "clinic_calendar_request_seconds",
    "Latência das chamadas ao calendário externo",
    ["action"],
    registry=registry,
)

# ───────────────────────────────────────────────
# Financeiro
# ───────────────────────────────────────────────
FEE_COMPUTATIONS = Counter(
    "clinic_fee_computations_total",
    "Cálculos de taxa/líquido por forma de pagamento",
    ["method"],
    registry=registry,
)
INSTALLMENTS_PAID = Counter(
    "clinic_installments_paid_total",
    "Parcelas marcadas como pagas",
    ["method"],
    registry=registry,
)


def metrics_payload() -> tuple[bytes, str]:
    """Corpo + content-type para um endpoint /metrics."""
    return generate_latest(registry), CONTENT_TYPE_LATEST
