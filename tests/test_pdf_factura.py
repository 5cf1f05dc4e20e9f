from datetime import date
from decimal import Decimal

import pdfplumber

from facturas.app.services.pdf_factura import generar_pdf


def test_pdf_con_desglose(tmp_path, empresa_in, cliente_in, nueva_factura):
    f = nueva_factura(
        fecha=date(2025, 3, 10),
        fecha_vencimiento=date(2025, 4, 9),
        aplicar_retencion=True,
        tipo_retencion=Decimal("15"),
        notas="Transferencia a ES00 0000 0000",
    )
    ruta = generar_pdf(f, empresa_in, cliente_in, tmp_path / "pdf" / "factura.pdf")

    with pdfplumber.open(ruta) as pdf:
        texto = "\n".join(page.extract_text() or "" for page in pdf.pages)

    assert "FACTURA" in texto
    assert "2025-001" in texto
    assert "10/03/2025" in texto
    assert "Comercial Ruiz & Hijos" in texto
    assert "Retención (15%)" in texto
    assert "Recargo de equivalencia" not in texto
    assert "2.109,50" in texto
    assert "544,50" in texto


def test_pdf_sin_lineas(tmp_path, empresa_in, cliente_in, nueva_factura):
    f = nueva_factura(lineas=[])
    ruta = generar_pdf(f, empresa_in, cliente_in, tmp_path / "vacia.pdf")

    with pdfplumber.open(ruta) as pdf:
        texto = pdf.pages[0].extract_text()
    assert "TOTAL" in texto
    assert "0,00" in texto
