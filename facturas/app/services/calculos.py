from decimal import Decimal


CIEN = Decimal("100")
CERO = Decimal("0")
RECARGO_EQUIVALENCIA = Decimal("0.052")


def _d(x) -> Decimal:
    # float → Decimal por su texto (0.1 → Decimal("0.1")), no por su binario
    return x if isinstance(x, Decimal) else Decimal(str(x))


def importes_linea(linea) -> dict:
    """
    Importes derivados de una línea, sin redondear.

    El descuento de la línea se aplica sobre cantidad * precio y el IVA
    sobre lo que queda tras ese descuento.
    """
    subtotal = _d(linea.cantidad) * _d(linea.precio)
    descuento = subtotal * _d(linea.descuento) / CIEN
    base = subtotal - descuento
    iva = base * _d(linea.tipo_iva) / CIEN
    return {
        "subtotal": subtotal,
        "descuento": descuento,
        "base": base,
        "iva": iva,
        "total": base + iva,
    }


def total_linea(linea) -> Decimal:
    """Total de la línea con IVA (sin recargo de equivalencia)."""
    return importes_linea(linea)["total"]


def subtotal_factura(lineas) -> Decimal:
    return sum((_d(l.cantidad) * _d(l.precio) for l in lineas), CERO)


def descuento_total_factura(lineas, descuento_global=CERO) -> Decimal:
    """
    Descuentos de línea + descuento global.

    El descuento global se calcula sobre el subtotal SIN descuentos de línea.
    """
    lineas = list(lineas)
    por_lineas = sum((importes_linea(l)["descuento"] for l in lineas), CERO)
    return por_lineas + subtotal_factura(lineas) * _d(descuento_global) / CIEN


def iva_factura(lineas) -> Decimal:
    # el descuento global no reduce la base del IVA
    return sum((importes_linea(l)["iva"] for l in lineas), CERO)


def _recargo_linea(importes: dict, tipo_iva, aplicar: bool) -> Decimal:
    if aplicar and tipo_iva > 0:
        return importes["base"] * RECARGO_EQUIVALENCIA
    return CERO


def recargo_equivalencia(lineas, aplicar: bool = False) -> Decimal:
    return sum(
        (_recargo_linea(importes_linea(l), l.tipo_iva, aplicar) for l in lineas),
        CERO,
    )


def retencion_irpf(base, aplicar: bool = False, tipo=CERO) -> Decimal:
    """
    Retención IRPF sobre `base`.

    El llamador pasa como base (subtotal - descuento total).
    """
    if aplicar and tipo > 0:
        return _d(base) * _d(tipo) / CIEN
    return CERO


def total_factura(
    lineas,
    descuento_global=CERO,
    aplicar_recargo: bool = False,
    aplicar_retencion: bool = False,
    tipo_retencion=CERO,
) -> Decimal:
    """
    Total de la factura.

    Orden fijo:
      1. subtotal y descuento total (líneas + global)
      2. IVA y recargo por línea, sobre la base con SOLO el descuento de línea
      3. retención sobre (subtotal - descuento total)
      4. total = base tras descuentos + IVA + recargo - retención

    No se redondea nada aquí; el redondeo es cosa de la presentación.
    """
    lineas = list(lineas)
    subtotal = subtotal_factura(lineas)
    descuento = descuento_total_factura(lineas, descuento_global)
    tras_descuento = subtotal - descuento

    impuestos = CERO
    for l in lineas:
        importes = importes_linea(l)
        impuestos += importes["iva"] + _recargo_linea(
            importes, l.tipo_iva, aplicar_recargo
        )

    retencion = retencion_irpf(tras_descuento, aplicar_retencion, tipo_retencion)
    return tras_descuento + impuestos - retencion


def desglose_factura(factura) -> dict:
    """
    Desglose completo de una factura (o de un borrador FacturaIn).

    Es lo único que consumen la vista previa, el panel, el PDF y las
    exportaciones: nadie recalcula por su cuenta.
    """
    lineas = list(factura.lineas)
    subtotal = subtotal_factura(lineas)
    descuento = descuento_total_factura(lineas, factura.descuento_global)
    base_imponible = subtotal - descuento

    return {
        "subtotal": subtotal,
        "descuento": descuento,
        "base_imponible": base_imponible,
        "iva": iva_factura(lineas),
        "recargo_equivalencia": recargo_equivalencia(
            lineas, factura.aplicar_recargo
        ),
        "retencion": retencion_irpf(
            base_imponible, factura.aplicar_retencion, factura.tipo_retencion
        ),
        "total": total_factura(
            lineas,
            factura.descuento_global,
            factura.aplicar_recargo,
            factura.aplicar_retencion,
            factura.tipo_retencion,
        ),
    }


def filas_resumen(factura, desglose: dict) -> list[tuple[str, Decimal]]:
    """Filas del cuadro resumen; se omiten las que no aplican."""
    filas = [("Subtotal", desglose["subtotal"])]
    if desglose["descuento"] > 0:
        filas.append(("Descuento", -desglose["descuento"]))
    filas.append(("IVA", desglose["iva"]))
    if factura.aplicar_recargo:
        filas.append(("Recargo de equivalencia", desglose["recargo_equivalencia"]))
    if factura.aplicar_retencion and desglose["retencion"] > 0:
        tipo = format(_d(factura.tipo_retencion).normalize(), "f")
        filas.append((f"Retención ({tipo}%)", -desglose["retencion"]))
    filas.append(("TOTAL", desglose["total"]))
    return filas
