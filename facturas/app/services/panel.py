from decimal import Decimal

from ..models import EstadoFactura
from .calculos import total_factura


def _total(f) -> Decimal:
    return total_factura(
        f.lineas,
        f.descuento_global,
        f.aplicar_recargo,
        f.aplicar_retencion,
        f.tipo_retencion,
    )


def resumen_panel(facturas, num_recientes: int = 5) -> dict:
    """
    Resumen de la actividad de facturación.

    Cada factura se calcula una sola vez con el motor de totales y los
    importes se acumulan sin redondear.
    """
    facturas = list(facturas)
    por_estado = {e: Decimal("0") for e in EstadoFactura}
    por_mes: dict[str, Decimal] = {}
    importe_total = Decimal("0")

    for f in facturas:
        t = _total(f)
        importe_total += t
        por_estado[EstadoFactura(f.estado)] += t
        mes = f"{f.fecha.year}-{f.fecha.month:02d}"
        por_mes[mes] = por_mes.get(mes, Decimal("0")) + t

    recientes = sorted(facturas, key=lambda f: f.fecha, reverse=True)[:num_recientes]

    return {
        "num_facturas": len(facturas),
        "pendientes": sum(1 for f in facturas if f.estado == EstadoFactura.enviada),
        "pagadas": sum(1 for f in facturas if f.estado == EstadoFactura.pagada),
        "importe_total": importe_total,
        "por_estado": por_estado,
        "por_mes": dict(sorted(por_mes.items())),
        "recientes": recientes,
    }
