import json
import logging
import os
import xml.etree.ElementTree as ET
from datetime import date
from decimal import Decimal
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from ..schemas import ClienteIn, EmpresaIn, FacturaIn
from . import almacen
from .calculos import desglose_factura


load_dotenv()

EXPORT_DIR = os.getenv("FACTURAS_EXPORT_DIR", "./exportaciones")

logger = logging.getLogger(__name__)


def _num(v: Decimal) -> str:
    """Decimal → texto numérico plano, sin ceros de relleno ('2409.5')."""
    s = format(v.normalize(), "f")
    return "0" if s in ("-0", "0") else s


def _a_json(v):
    if isinstance(v, Decimal):
        return float(v)
    if isinstance(v, date):
        return v.isoformat()
    if isinstance(v, Enum):
        return v.value
    raise TypeError(f"No serializable: {type(v).__name__}")


def factura_a_dict(f) -> dict:
    """Cabecera, líneas y desglose de totales (importes sin formatear)."""
    d = f.model_dump(exclude={"lineas", "factura"})
    d["lineas"] = [
        l.model_dump(exclude={"id", "factura_id", "factura"}) for l in f.lineas
    ]
    d["desglose"] = desglose_factura(f)
    return d


def exportar_json(empresas, clientes, facturas, ruta: str | Path) -> Path:
    ruta = Path(ruta)
    ruta.parent.mkdir(parents=True, exist_ok=True)
    datos = {
        "empresas": [e.model_dump() for e in empresas],
        "clientes": [c.model_dump() for c in clientes],
        "facturas": [factura_a_dict(f) for f in facturas],
    }
    ruta.write_text(
        json.dumps(datos, default=_a_json, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    logger.info("JSON exportado a %s", ruta)
    return ruta


def _sub(padre: ET.Element, tag: str, valor) -> None:
    if valor is None:
        return
    el = ET.SubElement(padre, tag)
    if isinstance(valor, Decimal):
        el.text = _num(valor)
    elif isinstance(valor, Enum):
        el.text = valor.value
    elif isinstance(valor, date):
        el.text = valor.isoformat()
    elif isinstance(valor, bool):
        el.text = "true" if valor else "false"
    else:
        el.text = str(valor)


def facturas_a_xml(facturas) -> ET.Element:
    raiz = ET.Element("facturas")
    for f in facturas:
        d = factura_a_dict(f)
        nodo = ET.SubElement(raiz, "factura", id=str(d.pop("id")))
        lineas = d.pop("lineas")
        desglose = d.pop("desglose")
        for k, v in d.items():
            _sub(nodo, k, v)

        nodo_lineas = ET.SubElement(nodo, "lineas")
        for l in lineas:
            nodo_linea = ET.SubElement(nodo_lineas, "linea", orden=str(l.pop("orden")))
            for k, v in l.items():
                _sub(nodo_linea, k, v)

        nodo_desglose = ET.SubElement(nodo, "desglose")
        for k, v in desglose.items():
            _sub(nodo_desglose, k, v)
    return raiz


def exportar_xml(facturas, ruta: str | Path) -> Path:
    ruta = Path(ruta)
    ruta.parent.mkdir(parents=True, exist_ok=True)
    arbol = ET.ElementTree(facturas_a_xml(facturas))
    ET.indent(arbol)
    arbol.write(ruta, encoding="UTF-8", xml_declaration=True)
    logger.info("XML exportado a %s", ruta)
    return ruta


def _lista(datos: dict, clave: str) -> list:
    v = datos.get(clave, [])
    if not isinstance(v, list):
        raise ValueError(f"JSON inválido: '{clave}' debe ser una lista")
    return v


def importar_json(texto: str) -> dict:
    """
    Importa empresas, clientes y facturas exportados con exportar_json.

    Todo o nada: primero se valida el fichero entero y después se guarda
    en una sola transacción. Empresas y clientes se reconocen por NIF y
    las facturas cuyo número ya existe se omiten.
    """
    try:
        datos = json.loads(texto)
    except json.JSONDecodeError as e:
        raise ValueError(f"JSON inválido: {e}") from e
    if not isinstance(datos, dict):
        raise ValueError("JSON inválido: se esperaba un objeto")

    try:
        empresas = [(e.get("id"), EmpresaIn.model_validate(e)) for e in _lista(datos, "empresas")]
        clientes = [(c.get("id"), ClienteIn.model_validate(c)) for c in _lista(datos, "clientes")]
        facturas = [
            FacturaIn.model_validate({k: v for k, v in f.items() if k != "desglose"})
            for f in _lista(datos, "facturas")
        ]
    except (ValidationError, AttributeError) as e:
        raise ValueError(f"Datos inválidos: {e}") from e

    return almacen.importar_lote(empresas, clientes, facturas)



def ruta_exportacion(outdir: str, nombre: str) -> Path:
    outdir = outdir.rstrip("/") or "."
    os.makedirs(outdir, exist_ok=True)
    return Path(outdir) / nombre
