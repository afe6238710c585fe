from enum import Enum

import structlog

log = structlog.get_logger(__name__)


class PaymentMethod(str, Enum):
    PIX = "pix"
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    INFINIT_TAG = "infinit_tag"
    BANK_TRANSFER = "bank_transfer"

    @property
    def label(self) -> str:
        return METHOD_LABELS[self]


METHOD_LABELS = {
    PaymentMethod.PIX: "PIX",
    PaymentMethod.CASH: "Dinheiro",
    PaymentMethod.CREDIT_CARD: "Crédito",
    PaymentMethod.DEBIT_CARD: "Débito",
    PaymentMethod.INFINIT_TAG: "Infinit Tag",
    PaymentMethod.BANK_TRANSFER: "Transferência",
}

# Sem taxa: nem consulta a tabela
FEE_FREE_METHODS = frozenset({PaymentMethod.PIX, PaymentMethod.CASH, PaymentMethod.BANK_TRANSFER})
# Passam pela maquininha (provedor de pagamento)
CARD_METHODS = frozenset({PaymentMethod.CREDIT_CARD, PaymentMethod.DEBIT_CARD, PaymentMethod.INFINIT_TAG})
# Taxa depende da quantidade de parcelas
INSTALLMENT_METHODS = frozenset({PaymentMethod.CREDIT_CARD, PaymentMethod.INFINIT_TAG})

DEFAULT_METHOD = PaymentMethod.PIX


def parse_method(value: str | PaymentMethod | None) -> PaymentMethod | None:
    """Método conhecido ou None (valor desconhecido é logado)."""
    if isinstance(value, PaymentMethod):
        return value
    if not value:
        return None
    try:
        return PaymentMethod(str(value).strip().lower())
    except ValueError:
        log.warning("payment_method.unknown", method=value)
        return None


def fee_lookup_method(method: PaymentMethod) -> PaymentMethod:
    """infinit_tag usa a mesma tabela de taxas do crédito."""
    return PaymentMethod.CREDIT_CARD if method is PaymentMethod.INFINIT_TAG else method


def provider_for(method: PaymentMethod | None, card_provider: str) -> str | None:
    return card_provider if method in CARD_METHODS else None
