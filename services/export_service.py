"""
Service d'export des rapports (PDF et Excel)
Les documents sont entièrement générés en mémoire et retournés en bytes
"""
import io
import os
import logging
from datetime import date, datetime
from typing import List, Dict, Optional, Tuple
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle

from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment

import config
from models.transaction import TransactionFilters

logger = logging.getLogger(__name__)

PDF_MIME = 'application/pdf'
EXCEL_MIME = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

TYPE_LABELS = {'income': 'Revenu', 'expense': 'Dépense'}
DESCRIPTION_MAX_LENGTH = 30

HEADER_FILL = PatternFill(fill_type='solid', fgColor='FF4472C4')
HEADER_FONT = Font(bold=True, color='FFFFFFFF', size=12)

# DejaVu Sans, livrée avec le service : couvre le vietnamien et les accents français
FONT_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'fonts')
BUNDLED_FONTS = (os.path.join(FONT_DIR, 'DejaVuSans.ttf'), os.path.join(FONT_DIR, 'DejaVuSans-Bold.ttf'))


def format_money(amount: float) -> str:
    """Formate un montant : séparateur de milliers '.', suffixe de devise"""
    if float(amount).is_integer():
        text = f"{amount:,.0f}"
    else:
        text = f"{amount:,.2f}".replace('.', '#')
    text = text.replace(',', '.').replace('#', ',')
    return f"{text} {config.CURRENCY_SUFFIX}"


def format_date(value: Optional[date]) -> str:
    return value.strftime('%d/%m/%Y') if value else ''


def truncate(text: str, length: int = DESCRIPTION_MAX_LENGTH) -> str:
    return text if len(text) <= length else text[:length]


def currency_format() -> str:
    return f'#,##0 "{config.CURRENCY_SUFFIX}"'


def export_filename(extension: str) -> str:
    return f"rapport-transactions-{datetime.now().strftime('%Y%m%d-%H%M%S')}.{extension}"


def _find_font_files() -> Tuple[str, str]:
    if config.PDF_FONT_PATH:
        return config.PDF_FONT_PATH, config.PDF_FONT_BOLD_PATH or config.PDF_FONT_PATH
    return BUNDLED_FONTS


_registered_fonts = None


def register_fonts() -> Tuple[str, str]:
    """Enregistre (une seule fois) les polices embarquées dans les PDF"""
    global _registered_fonts
    if _registered_fonts is None:
        regular, bold = _find_font_files()
        pdfmetrics.registerFont(TTFont('ReportFont', regular))
        pdfmetrics.registerFont(TTFont('ReportFont-Bold', bold))
        logger.info(f"Polices PDF enregistrées: {regular}, {bold}")
        _registered_fonts = ('ReportFont', 'ReportFont-Bold')
    return _registered_fonts


def _period_label(filters: Optional[TransactionFilters]) -> Optional[str]:
    if not filters or not (filters.start_date or filters.end_date):
        return None
    start = format_date(filters.start_date) if filters.start_date else 'Tout'
    end = format_date(filters.end_date) if filters.end_date else "Aujourd'hui"
    return f"Période : {start} - {end}"


class ExportService:
    """Génère les rapports PDF et Excel à partir des données déjà interrogées"""

    def export_pdf(self, user, filters: Optional[TransactionFilters], transactions: List,
                   summary: Dict) -> bytes:
        font, bold_font = register_fonts()
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer, pagesize=A4,
            leftMargin=50, rightMargin=50, topMargin=50, bottomMargin=60,
            title='Rapport des transactions', author=user.name,
        )

        title_style = ParagraphStyle('title', fontName=bold_font, fontSize=20, leading=24, alignment=TA_CENTER)
        centered = ParagraphStyle('centered', fontName=font, fontSize=12, leading=16, alignment=TA_CENTER)
        heading = ParagraphStyle('heading', fontName=bold_font, fontSize=16, leading=20, spaceAfter=8)
        body = ParagraphStyle('body', fontName=font, fontSize=10, leading=14)

        story = [
            Paragraph('RAPPORT DE GESTION DES DÉPENSES', title_style),
            Spacer(1, 12),
            Paragraph(f"Utilisateur : {escape(user.name)}", centered),
            Paragraph(f"E-mail : {escape(user.email)}", centered),
        ]
        period = _period_label(filters)
        if period:
            story.append(Paragraph(period, centered))
        story.append(Paragraph(f"Date d'export : {format_date(date.today())}", centered))
        story.append(Spacer(1, 24))

        # Résumé
        story.append(Paragraph('RÉSUMÉ', heading))
        summary_table = Table([
            ['Total des revenus :', format_money(summary['income'])],
            ['Total des dépenses :', format_money(summary['expense'])],
            ['Solde :', format_money(summary['balance'])],
            ['Nombre de transactions :', str(summary['totalTransactions'])],
        ], colWidths=[250, 245])
        summary_table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (-1, -1), font),
            ('FONTSIZE', (0, 0), (-1, -1), 12),
            ('ALIGN', (1, 0), (1, -1), 'RIGHT'),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
        ]))
        story.append(summary_table)
        story.append(Spacer(1, 24))

        # Détail des transactions
        story.append(Paragraph('DÉTAIL DES TRANSACTIONS', heading))
        shown = transactions[:config.PDF_MAX_ROWS]
        if not shown:
            story.append(Paragraph('Aucune transaction pour ces critères.', body))
        else:
            rows = [['Date', 'Type', 'Catégorie', 'Description', 'Montant']]
            for t in shown:
                rows.append([
                    format_date(t.date),
                    TYPE_LABELS.get(t.type, t.type),
                    t.category,
                    truncate(t.description),
                    format_money(t.amount),
                ])
            detail = Table(rows, colWidths=[65, 55, 100, 170, 105], repeatRows=1)
            detail.setStyle(TableStyle([
                ('FONTNAME', (0, 0), (-1, 0), bold_font),
                ('FONTNAME', (0, 1), (-1, -1), font),
                ('FONTSIZE', (0, 0), (-1, -1), 9),
                ('LINEBELOW', (0, 0), (-1, 0), 1, colors.black),
                ('ALIGN', (4, 0), (4, -1), 'RIGHT'),
                ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ]))
            story.append(detail)
            if len(transactions) > len(shown):
                story.append(Spacer(1, 8))
                story.append(Paragraph(
                    f"{len(shown)} premières transactions affichées sur {len(transactions)}.", body
                ))

        def draw_footer(canvas, document):
            canvas.saveState()
            canvas.setFont(font, 8)
            canvas.setFillColor(colors.HexColor('#666666'))
            canvas.drawCentredString(
                A4[0] / 2, 30,
                'Rapport généré automatiquement par le gestionnaire de dépenses'
            )
            canvas.restoreState()

        doc.build(story, onFirstPage=draw_footer, onLaterPages=draw_footer)
        return buffer.getvalue()

    def export_excel(self, user, filters: Optional[TransactionFilters], transactions: List,
                     summary: Dict, by_category: List[Dict]) -> bytes:
        workbook = Workbook()
        workbook.properties.creator = user.name
        workbook.properties.created = datetime.now()
        money = currency_format()

        # Feuille 1 : résumé
        sheet = workbook.active
        sheet.title = 'Résumé'
        self._write_header(sheet, [('Indicateur', 30), ('Valeur', 20)])
        for label, key in (('Total des revenus', 'income'), ('Total des dépenses', 'expense'), ('Solde', 'balance')):
            sheet.append([label, summary[key]])
            sheet.cell(row=sheet.max_row, column=2).number_format = money
        sheet.append(['Nombre de transactions', summary['totalTransactions']])
        period = _period_label(filters)
        if period:
            sheet.append([period])

        # Feuille 2 : toutes les transactions
        sheet = workbook.create_sheet('Transactions')
        self._write_header(sheet, [
            ('N°', 8), ('Date', 14), ('Type', 12), ('Catégorie', 20),
            ('Description', 40), ('Montant', 20), ('Étiquettes', 25),
        ])
        for index, t in enumerate(transactions, start=1):
            sheet.append([
                index,
                t.date,
                TYPE_LABELS.get(t.type, t.type),
                t.category,
                t.description,
                t.amount,
                ', '.join(t.tags or []),
            ])
            row = sheet.max_row
            sheet.cell(row=row, column=2).number_format = 'DD/MM/YYYY'
            sheet.cell(row=row, column=6).number_format = money

        # Feuille 3 : par catégorie
        sheet = workbook.create_sheet('Par catégorie')
        self._write_header(sheet, [('Catégorie', 20), ('Type', 15), ('Total', 20), ('Nombre', 12)])
        for stat in by_category:
            sheet.append([stat['category'], TYPE_LABELS.get(stat['type'], stat['type']), stat['total'], stat['count']])
            sheet.cell(row=sheet.max_row, column=3).number_format = money

        buffer = io.BytesIO()
        workbook.save(buffer)
        return buffer.getvalue()

    @staticmethod
    def _write_header(sheet, columns):
        sheet.append([title for title, _ in columns])
        for index, (_, width) in enumerate(columns, start=1):
            cell = sheet.cell(row=1, column=index)
            cell.font = HEADER_FONT
            cell.fill = HEADER_FILL
            cell.alignment = Alignment(horizontal='center')
            sheet.column_dimensions[cell.column_letter].width = width
        sheet.freeze_panes = 'A2'
