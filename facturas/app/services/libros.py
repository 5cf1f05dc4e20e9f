import logging
from datetime import date

import pandas as pd
from sqlalchemy.orm import selectinload
from sqlmodel import select

from ..db import get_session
from ..models import Cliente, Factura
from .calculos import desglose_factura
from .exportacion import ruta_exportacion
from .formato import redondear


logger = logging.getLogger(__name__)

COLUMNAS = [
    "numero",
    "fecha",
    "cliente",
    "cliente_nif",
    "estado",
    "subtotal",
    "descuento",
    "base_imponible",
    "iva",
    "recargo_equivalencia",
    "retencion",
    "total",
]


def parse_periodo(periodo: str) -> tuple[int, int]:
    """'2025Q3' → (2025, 3)"""
    try:
        year = int(periodo[:4])
        q = int(periodo[-1])
        if len(periodo) != 6 or periodo[4].upper() != "Q" or q not in (1, 2, 3, 4):
            raise ValueError
    except ValueError:
        raise ValueError("Periodo inválido. Usa formato YYYYQ#, ej: 2025Q3") from None
    return year, q


def quarter_range(year: int, q: int):
    """
    Devuelve (fecha_inicio, fecha_fin) del trimestre.
    """
    start = date(year, (q - 1) * 3 + 1, 1)
    if q == 4:
        end = date(year, 12, 31)
    else:
        end = date.fromordinal(date(year, q * 3 + 1, 1).toordinal() - 1)
    return start, end


def libro_emitidas(periodo: str) -> pd.DataFrame:
    year, q = parse_periodo(periodo)
    start, end = quarter_range(year, q)

    stmt = (
        select(Factura, Cliente)
        .join(Cliente, Cliente.id == Factura.cliente_id)
        .where(Factura.fecha.between(start, end))
        .order_by(Factura.fecha, Factura.numero)
        .options(selectinload(Factura.lineas))
    )
    with get_session() as s:
        filas = list(s.exec(stmt).all())

    registros = []
    for f, c in filas:
        d = desglose_factura(f)
        registros.append(
            {
                "numero": f.numero,
                "fecha": f.fecha.isoformat(),
                "cliente": c.nombre,
                "cliente_nif": c.nif,
                "estado": f.estado.value,
                **{k: float(redondear(v)) for k, v in d.items()},
            }
        )
    return pd.DataFrame(registros, columns=COLUMNAS)


def export_libros(periodo: str, outdir: str) -> dict:
    df = libro_emitidas(periodo)
    path = ruta_exportacion(outdir, f"libro_facturas_emitidas_{periodo}.csv")
    df.to_csv(path, index=False)
    logger.info("Libro de facturas emitidas %s: %d filas → %s", periodo, len(df), path)
    return {"emitidas": str(path), "filas": len(df)}
