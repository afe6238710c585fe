"""
Relatório financeiro mensal em PDF.

Resumo do mês (recebido, a receber, em atraso), receita por forma de
pagamento, taxas e ticket médio; opcionalmente a meta do mês.
"""
import io
from datetime import date
from decimal import Decimal
from typing import Any

import structlog
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Flowable, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from clinic_core.core.utils.date_utils import parse_month_year
from financial_billing.core.application.dtos.financial_dto import MonthlyFinancialSummary
from financial_billing.core.domain.entities.monthly_goal_entity import MonthlyGoalEntity
from financial_billing.core.domain.entities.payment_method import parse_method

log = structlog.get_logger(__name__)

PRIMARY = colors.HexColor("#1E3A8A")
ZEBRA = colors.HexColor("#F1F5F9")
GRID = colors.HexColor("#CBD5E1")

PORTUGUESE_MONTHS = {
    1: "janeiro", 2: "fevereiro", 3: "março", 4: "abril",
    5: "maio", 6: "junho", 7: "julho", 8: "agosto",
    9: "setembro", 10: "outubro", 11: "novembro", 12: "dezembro",
}


def format_currency(value: Decimal | float | int | None, symbol: str = "R$") -> str:
    """1234.5 → 'R$ 1.234,50'."""
    if value is None:
        return f"{symbol} 0,00"
    formatted = f"{float(value):,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"{symbol} {formatted}"


def format_percentage(value: Decimal | float | None, decimal_places: int = 2) -> str:
    # valor já vem em pontos percentuais (3.5 → 3,50%)
    return f"{float(value or 0):.{decimal_places}f}%".replace(".", ",")


def month_title(month_year: str) -> str:
    year, month = parse_month_year(month_year)
    return f"{PORTUGUESE_MONTHS[month].capitalize()} de {year}"


class MonthlyReportPdf:
    def __init__(self, clinic_name: str = "Clínica"):
        self.clinic_name = clinic_name
        base = getSampleStyleSheet()
        self.styles: dict[str, ParagraphStyle] = {
            "title": ParagraphStyle("ReportTitle", parent=base["Title"], textColor=PRIMARY, fontSize=18),
            "subtitle": ParagraphStyle("ReportSubtitle", parent=base["Normal"], fontSize=10, textColor=colors.grey),
            "section": ParagraphStyle("SectionTitle", parent=base["Heading2"], textColor=PRIMARY, spaceBefore=12),
            "body": base["BodyText"],
        }

    def build(
        self,
        summary: MonthlyFinancialSummary,
        goal: MonthlyGoalEntity | None = None,
        generated_on: date | None = None,
    ) -> bytes:
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            leftMargin=2 * cm,
            rightMargin=2 * cm,
            topMargin=2 * cm,
            bottomMargin=2 * cm,
            title=f"Relatório Financeiro - {self.clinic_name}",
            author=self.clinic_name,
        )
        story: list[Flowable] = []
        story.extend(self._header(summary.month_year, generated_on))
        story.extend(self._overview(summary))
        story.extend(self._by_method(summary))
        story.extend(self._fees_and_ticket(summary))
        if goal is not None:
            story.extend(self._goal(summary, goal))
        doc.build(story)
        payload = buffer.getvalue()
        log.info("monthly_report.built", month_year=summary.month_year, size=len(payload))
        return payload

    # ───────────────────────── seções ─────────────────────────
    def _header(self, month_year: str, generated_on: date | None) -> list[Flowable]:
        parts: list[Flowable] = [
            Paragraph(f"Relatório Financeiro - {self.clinic_name}", self.styles["title"]),
            Paragraph(month_title(month_year), self.styles["subtitle"]),
        ]
        if generated_on:
            parts.append(Paragraph(f"Gerado em {generated_on.strftime('%d/%m/%Y')}", self.styles["subtitle"]))
        parts.append(Spacer(1, 0.5 * cm))
        return parts

    def _overview(self, summary: MonthlyFinancialSummary) -> list[Flowable]:
        rows = [["", "Bruto", "Taxas", "Líquido", "Parcelas"]]
        for label, bucket in (
            ("Recebido", summary.paid),
            ("A receber", summary.pending),
            ("Em atraso", summary.overdue),
        ):
            rows.append([
                label,
                format_currency(bucket.gross),
                format_currency(bucket.fee),
                format_currency(bucket.net),
                str(bucket.count),
            ])
        return [Paragraph("Resumo do mês", self.styles["section"]), self._table(rows)]

    def _by_method(self, summary: MonthlyFinancialSummary) -> list[Flowable]:
        if not summary.by_method:
            return [
                Paragraph("Receita por forma de pagamento", self.styles["section"]),
                Paragraph("Sem movimentação no período.", self.styles["body"]),
            ]
        rows = [["Forma", "Recebido", "Líquido", "Previsto"]]
        for method, revenue in sorted(summary.by_method.items()):
            parsed = parse_method(method)
            rows.append([
                parsed.label if parsed else method,
                format_currency(revenue.paid.gross),
                format_currency(revenue.paid.net),
                format_currency(revenue.expected.gross),
            ])
        return [Paragraph("Receita por forma de pagamento", self.styles["section"]), self._table(rows)]

    def _fees_and_ticket(self, summary: MonthlyFinancialSummary) -> list[Flowable]:
        fees = summary.total_fees
        ticket = summary.average_ticket
        rows = [
            ["Indicador", "Valor"],
            ["Taxas pagas", format_currency(fees.fees)],
            ["Taxa efetiva", format_percentage(fees.pct)],
            ["Ticket médio (bruto)", format_currency(ticket.avg_gross)],
            ["Ticket médio (líquido)", format_currency(ticket.avg_net)],
            ["Registros com pagamento", str(ticket.count)],
        ]
        return [Paragraph("Taxas e ticket médio", self.styles["section"]), self._table(rows)]

    def _goal(self, summary: MonthlyFinancialSummary, goal: MonthlyGoalEntity) -> list[Flowable]:
        rows = [
            ["Meta", "Alvo", "Realizado"],
            ["Bruto", format_currency(goal.target_gross), format_currency(summary.paid.gross)],
            ["Líquido", format_currency(goal.target_net), format_currency(summary.paid.net)],
        ]
        return [Paragraph("Meta do mês", self.styles["section"]), self._table(rows)]

    @staticmethod
    def _table(rows: list[list[Any]]) -> Table:
        table = Table(rows, hAlign="LEFT")
        style_commands = [
            ("BACKGROUND", (0, 0), (-1, 0), PRIMARY),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
            ("GRID", (0, 0), (-1, -1), 0.5, GRID),
            ("BOTTOMPADDING", (0, 0), (-1, -1), 5),
            ("TOPPADDING", (0, 0), (-1, -1), 5),
        ]
        for i in range(2, len(rows), 2):
            style_commands.append(("BACKGROUND", (0, i), (-1, i), ZEBRA))
        table.setStyle(TableStyle(style_commands))
        return table
