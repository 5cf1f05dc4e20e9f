from decimal import Decimal
from itertools import permutations
from types import SimpleNamespace

import pytest

from facturas.app.schemas import FacturaIn, LineaIn
from facturas.app.services.calculos import (
    desglose_factura,
    descuento_total_factura,
    filas_resumen,
    importes_linea,
    iva_factura,
    recargo_equivalencia,
    retencion_irpf,
    subtotal_factura,
    total_factura,
    total_linea,
)
from facturas.app.services.formato import redondear


def linea(cantidad, precio, descuento=0, tipo_iva=0):
    return SimpleNamespace(
        cantidad=Decimal(str(cantidad)),
        precio=Decimal(str(precio)),
        descuento=Decimal(str(descuento)),
        tipo_iva=Decimal(str(tipo_iva)),
    )


DOS_LINEAS = [linea(1, 1500, 0, 21), linea(1, 500, 10, 21)]


def test_total_linea():
    assert total_linea(linea(2, 100, 10, 21)) == Decimal("217.8")


def test_importes_linea():
    imp = importes_linea(linea(1, 500, 10, 21))
    assert imp == {
        "subtotal": Decimal("500"),
        "descuento": Decimal("50"),
        "base": Decimal("450"),
        "iva": Decimal("94.5"),
        "total": Decimal("544.5"),
    }


@pytest.mark.parametrize("cantidad,precio,descuento,tipo_iva", [
    (0, 0, 0, 0),
    (1, 0.01, 100, 0),
    (3, 19.99, 0, 100),
    (7, 12.5, 33, 4),
])
def test_total_linea_no_negativo_con_entradas_validas(cantidad, precio, descuento, tipo_iva):
    assert total_linea(linea(cantidad, precio, descuento, tipo_iva)) >= 0


def test_factura_vacia():
    assert subtotal_factura([]) == 0
    assert descuento_total_factura([], Decimal("50")) == 0
    assert iva_factura([]) == 0
    assert total_factura([], Decimal("10"), True, True, Decimal("15")) == 0


def test_escenario_dos_lineas():
    assert subtotal_factura(DOS_LINEAS) == Decimal("2000")
    assert iva_factura(DOS_LINEAS) == Decimal("409.5")
    assert total_factura(DOS_LINEAS) == Decimal("2409.5")


def test_descuento_global_no_se_compone():
    lineas = [linea(1, 100)]
    assert descuento_total_factura(lineas, Decimal("10")) == Decimal("10")
    assert total_factura(lineas, Decimal("10")) == Decimal("90")


def test_descuento_global_sobre_subtotal_sin_descuentos_de_linea():
    lineas = [linea(1, 100, 50)]
    # 50 de la línea + 10% de 100 (no de 50)
    assert descuento_total_factura(lineas, Decimal("10")) == Decimal("60")


def test_descuento_global_no_reduce_la_base_del_iva():
    lineas = [linea(1, 100, 0, 21)]
    # 100 - 10 + 21 (IVA sobre 100, no sobre 90)
    assert total_factura(lineas, Decimal("10")) == Decimal("111")


def test_recargo_solo_en_lineas_con_iva():
    lineas = [linea(1, 100, 0, 0)]
    assert recargo_equivalencia(lineas, True) == 0
    assert total_factura(lineas, 0, True) == Decimal("100")


def test_recargo_sobre_base_con_descuento_de_linea():
    lineas = [linea(1, 1000, 10, 21), linea(1, 100, 0, 0)]
    assert recargo_equivalencia(lineas, True) == Decimal("46.8")
    assert recargo_equivalencia(lineas, False) == 0
    # 1000 + 189 + 46.8
    assert total_factura(lineas, 0, True) == Decimal("1235.8")


def test_retencion_al_final():
    lineas = [linea(1, 1000, 0, 21)]
    assert retencion_irpf(Decimal("1000"), True, Decimal("15")) == Decimal("150")
    assert total_factura(lineas, 0, False, True, Decimal("15")) == Decimal("1060")


def test_retencion_sobre_base_con_descuento_global():
    lineas = [linea(1, 1000, 0, 21)]
    # base 900, retención 135, IVA 210 sobre 1000
    assert total_factura(lineas, Decimal("10"), False, True, Decimal("15")) == Decimal("975")


@pytest.mark.parametrize("aplicar,tipo", [(False, Decimal("15")), (True, Decimal("0"))])
def test_retencion_desactivada(aplicar, tipo):
    assert retencion_irpf(Decimal("1000"), aplicar, tipo) == 0


def test_orden_de_lineas_indiferente():
    lineas = DOS_LINEAS + [linea(3, "12.35", 5, 10), linea(2, "0.99", 0, 4)]
    esperado = total_factura(lineas, Decimal("7"), True, True, Decimal("15"))
    for p in permutations(lineas):
        assert subtotal_factura(p) == subtotal_factura(lineas)
        assert total_factura(p, Decimal("7"), True, True, Decimal("15")) == esperado


def test_motor_permisivo_con_entradas_fuera_de_rango():
    # descuento del 150%: resultado negativo, sin excepción
    assert total_linea(linea(1, 100, 150, 0)) == Decimal("-50")
    assert total_factura([linea(-1, 100)]) == Decimal("-100")


def test_no_muta_las_entradas():
    lineas = [linea(1, 100, 10, 21)]
    antes = [vars(l).copy() for l in lineas]
    total_factura(lineas, Decimal("5"), True, True, Decimal("15"))
    assert [vars(l) for l in lineas] == antes


def test_redondeo_solo_al_final():
    lineas = [linea(1, "0.335", 0, 0), linea(1, "0.335", 0, 0)]
    total = total_factura(lineas)
    assert redondear(total) == Decimal("0.67")
    por_lineas = sum(redondear(total_linea(l)) for l in lineas)
    assert por_lineas == Decimal("0.68")


def test_desglose_cuadra_con_total():
    f = SimpleNamespace(
        lineas=DOS_LINEAS,
        descuento_global=Decimal("5"),
        aplicar_recargo=True,
        aplicar_retencion=True,
        tipo_retencion=Decimal("15"),
    )
    d = desglose_factura(f)
    assert d["subtotal"] == Decimal("2000")
    assert d["descuento"] == Decimal("150")
    assert d["base_imponible"] == Decimal("1850")
    assert d["iva"] == Decimal("409.5")
    assert d["recargo_equivalencia"] == Decimal("101.4")
    assert d["retencion"] == Decimal("277.5")
    assert d["total"] == d["base_imponible"] + d["iva"] + d["recargo_equivalencia"] - d["retencion"]
    assert d["total"] == Decimal("2083.4")


def test_desglose_de_un_borrador():
    borrador = FacturaIn(
        numero="B-1",
        fecha="2025-01-15",
        empresa_id=1,
        cliente_id=1,
        lineas=[LineaIn(cantidad=1, precio=100)],
    )
    assert desglose_factura(borrador)["total"] == Decimal("121")


def test_filas_resumen_omite_filas_vacias():
    f = SimpleNamespace(
        lineas=DOS_LINEAS,
        descuento_global=Decimal("0"),
        aplicar_recargo=False,
        aplicar_retencion=False,
        tipo_retencion=Decimal("15"),
    )
    filas = filas_resumen(f, desglose_factura(f))
    assert [c for c, _ in filas] == ["Subtotal", "IVA", "TOTAL"]


def test_filas_resumen_completas():
    f = SimpleNamespace(
        lineas=DOS_LINEAS,
        descuento_global=Decimal("5"),
        aplicar_recargo=True,
        aplicar_retencion=True,
        tipo_retencion=Decimal("15.00"),
    )
    filas = dict(filas_resumen(f, desglose_factura(f)))
    assert list(filas) == [
        "Subtotal",
        "Descuento",
        "IVA",
        "Recargo de equivalencia",
        "Retención (15%)",
        "TOTAL",
    ]
    assert filas["Descuento"] == Decimal("-150")
    assert filas["Retención (15%)"] == Decimal("-277.5")


def linea_float(cantidad, precio, descuento=0.0, tipo_iva=0.0):
    return SimpleNamespace(
        cantidad=float(cantidad),
        precio=float(precio),
        descuento=float(descuento),
        tipo_iva=float(tipo_iva),
    )


def test_escenarios_con_floats():
    dos = [linea_float(1, 1500, 0, 21), linea_float(1, 500, 10, 21)]
    assert total_factura(dos) == Decimal("2409.5")
    assert iva_factura(dos) == Decimal("409.5")

    assert total_factura([linea_float(1, 1000, 0, 21)], 0.0, False, True, 15.0) == Decimal("1060")
    assert total_factura([linea_float(1, 100)], 10.0) == Decimal("90")
    assert recargo_equivalencia([linea_float(1, 100, 0, 0)], True) == 0


def test_floats_mezclados_con_decimal():
    assert total_factura([linea(1, 100)], 10.0) == Decimal("90")
    assert retencion_irpf(1000, True, 15.0) == Decimal("150")
    assert total_linea(linea_float(3, 0.1, 0, 0)) == Decimal("0.3")


def test_lineas_como_generador():
    lineas = (l for l in DOS_LINEAS)
    assert total_factura(lineas) == Decimal("2409.5")
