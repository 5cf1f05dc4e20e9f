import logging
from decimal import Decimal
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .calculos import desglose_factura, filas_resumen, importes_linea
from .formato import eur, pct


logger = logging.getLogger(__name__)

AZUL = colors.HexColor("#2980B9")


def _bloque_fiscal(titulo: str, d, estilo) -> list:
    lineas = [
        f"<font color='grey'>{titulo}</font>",
        f"<b>{escape(d.nombre)}</b>",
        f"CIF/NIF: {escape(d.nif)}",
        escape(d.direccion),
        escape(f"{d.codigo_postal} {d.ciudad}"),
        escape(f"{d.provincia}, {d.pais}"),
    ]
    if d.telefono:
        lineas.append(escape(f"Tel: {d.telefono}"))
    if d.email:
        lineas.append(escape(f"Email: {d.email}"))
    return [Paragraph(l, estilo) for l in lineas]


def _tabla_lineas(factura) -> Table:
    datos = [["Descripción", "Cantidad", "Precio", "Descuento", "Base Imponible", "IVA", "Total"]]
    for l in factura.lineas:
        imp = importes_linea(l)
        datos.append([
            l.descripcion,
            format(Decimal(l.cantidad).normalize(), "f"),
            eur(l.precio),
            pct(l.descuento),
            eur(imp["base"]),
            pct(l.tipo_iva),
            eur(imp["total"]),
        ])

    t = Table(datos, colWidths=[60 * mm, 16 * mm, 22 * mm, 18 * mm, 24 * mm, 16 * mm, 24 * mm], repeatRows=1)
    t.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), AZUL),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8),
        ("ALIGN", (1, 0), (-1, -1), "RIGHT"),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.lightgrey),
    ]))
    return t


def _tabla_resumen(factura) -> Table:
    filas = filas_resumen(factura, desglose_factura(factura))
    datos = [[f"{concepto}:", eur(importe)] for concepto, importe in filas]
    t = Table(datos, colWidths=[45 * mm, 30 * mm], hAlign="RIGHT")
    t.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, -1), colors.HexColor("#F9F9F9")),
        ("BOX", (0, 0), (-1, -1), 0.5, colors.HexColor("#DCDCDC")),
        ("ALIGN", (1, 0), (1, -1), "RIGHT"),
        ("FONTSIZE", (0, 0), (-1, -1), 9),
        ("LINEABOVE", (0, -1), (-1, -1), 0.5, colors.grey),
        ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
        ("FONTSIZE", (0, -1), (-1, -1), 11),
    ]))
    return t


def generar_pdf(factura, empresa, cliente, ruta: str | Path) -> Path:
    """Genera el PDF de la factura. Los totales salen del desglose del motor."""
    ruta = Path(ruta)
    ruta.parent.mkdir(parents=True, exist_ok=True)

    doc = SimpleDocTemplate(
        str(ruta), pagesize=A4,
        leftMargin=15 * mm, rightMargin=15 * mm,
        topMargin=15 * mm, bottomMargin=15 * mm,
        title=f"Factura {factura.numero}",
    )
    styles = getSampleStyleSheet()
    normal = ParagraphStyle("Datos", parent=styles["Normal"], fontSize=9, leading=11)
    titulo = ParagraphStyle("Titulo", parent=styles["Title"], fontSize=22, alignment=0)

    cabecera = [f"<b>Nº Factura:</b> {escape(factura.numero)}", f"<b>Fecha:</b> {factura.fecha.strftime('%d/%m/%Y')}"]
    if factura.fecha_vencimiento:
        cabecera.append(f"<b>Fecha vencimiento:</b> {factura.fecha_vencimiento.strftime('%d/%m/%Y')}")

    emisor = Table(
        [[[Paragraph("FACTURA", titulo)], _bloque_fiscal("EMISOR:", empresa, normal)]],
        colWidths=[110 * mm, 70 * mm],
    )
    emisor.setStyle(TableStyle([("VALIGN", (0, 0), (-1, -1), "TOP")]))

    elements = [emisor, Spacer(1, 4 * mm)]
    elements += [Paragraph(c, normal) for c in cabecera]
    elements.append(Spacer(1, 6 * mm))
    elements += _bloque_fiscal("CLIENTE:", cliente, normal)
    elements.append(Spacer(1, 8 * mm))
    elements.append(_tabla_lineas(factura))
    elements.append(Spacer(1, 8 * mm))

    if factura.notas:
        elements.append(Paragraph("<b>Notas:</b>", normal))
        elements.append(Paragraph(escape(factura.notas), normal))
        elements.append(Spacer(1, 4 * mm))

    elements.append(_tabla_resumen(factura))

    doc.build(elements)
    logger.info("PDF de la factura %s generado en %s", factura.numero, ruta)
    return ruta
