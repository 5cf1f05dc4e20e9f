import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path

import typer
from pydantic import ValidationError
from rich import print
from rich.logging import RichHandler
from rich.table import Table

from .db import init_db
from .models import EstadoFactura
from .schemas import ClienteIn, EmpresaIn, FacturaIn, LineaIn
from .services import almacen
from .services.calculos import desglose_factura, filas_resumen, importes_linea
from .services.exportacion import (
    EXPORT_DIR,
    exportar_json,
    exportar_xml,
    importar_json,
    ruta_exportacion,
)
from .services.formato import eur, pct
from .services.libros import export_libros
from .services.panel import resumen_panel
from .services.pdf_factura import generar_pdf


app = typer.Typer(help="CLI de facturación para pequeñas empresas")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Muestra el log")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
        force=True,
    )


def _error(msg: str):
    typer.secho(msg, fg=typer.colors.RED)
    raise typer.Exit(code=1)


def _parse_linea(texto: str) -> LineaIn:
    """'descripcion;cantidad;precio[;descuento[;iva]]'"""
    partes = [p.strip() for p in texto.split(";")]
    if len(partes) < 3 or len(partes) > 5:
        raise ValueError(f"Línea inválida: {texto!r}")
    campos = dict(zip(["descripcion", "cantidad", "precio", "descuento", "tipo_iva"], partes))
    try:
        for k in ("cantidad", "precio", "descuento", "tipo_iva"):
            if k in campos:
                campos[k] = Decimal(campos[k].replace(",", "."))
    except InvalidOperation:
        raise ValueError(f"Línea inválida: {texto!r}") from None
    return LineaIn(**campos)


@app.command()
def init():
    """Crea la base de datos y tablas."""
    init_db(); print("[green]Base de datos inicializada[/green]")


# ─────────────────────────────────────────────
# Empresas y clientes
# ─────────────────────────────────────────────

@app.command("empresa-alta")
def add_empresa(
    nombre: str,
    nif: str,
    direccion: str,
    codigo_postal: str,
    ciudad: str,
    provincia: str,
    pais: str = typer.Option("España"),
    telefono: str = typer.Option(None),
    email: str = typer.Option(None),
    logo: str = typer.Option(None, help="Ruta del logo"),
):
    """Añade una empresa emisora."""
    try:
        m = almacen.crear_empresa(EmpresaIn(
            nombre=nombre, nif=nif, direccion=direccion, codigo_postal=codigo_postal,
            ciudad=ciudad, provincia=provincia, pais=pais, telefono=telefono,
            email=email, logo=logo,
        ))
    except ValidationError as e:
        _error(str(e))
    print(f"[green]✓ Empresa guardada (id {m.id})[/green]")


@app.command("cliente-alta")
def add_cliente(
    nombre: str,
    nif: str,
    direccion: str,
    codigo_postal: str,
    ciudad: str,
    provincia: str,
    pais: str = typer.Option("España"),
    telefono: str = typer.Option(None),
    email: str = typer.Option(None),
):
    """Añade un cliente."""
    try:
        m = almacen.crear_cliente(ClienteIn(
            nombre=nombre, nif=nif, direccion=direccion, codigo_postal=codigo_postal,
            ciudad=ciudad, provincia=provincia, pais=pais, telefono=telefono,
            email=email,
        ))
    except ValidationError as e:
        _error(str(e))
    print(f"[green]✓ Cliente guardado (id {m.id})[/green]")


def _tabla_fiscal(titulo: str, registros) -> Table:
    t = Table(title=titulo)
    t.add_column("ID", justify="right")
    t.add_column("Nombre")
    t.add_column("NIF")
    t.add_column("Ciudad")
    t.add_column("Provincia")
    t.add_column("Email")
    for r in registros:
        t.add_row(str(r.id), r.nombre, r.nif, r.ciudad, r.provincia, r.email or "")
    return t


@app.command("empresas")
def list_empresas():
    """Lista empresas."""
    print(_tabla_fiscal("Empresas", almacen.listar_empresas()))


@app.command("clientes")
def list_clientes():
    """Lista clientes."""
    print(_tabla_fiscal("Clientes", almacen.listar_clientes()))


@app.command("empresa-baja")
def del_empresa(empresa_id: int):
    """Elimina una empresa sin facturas."""
    try:
        almacen.borrar_empresa(empresa_id)
    except ValueError as e:
        _error(str(e))
    print("[green]✓ Empresa eliminada[/green]")


@app.command("cliente-baja")
def del_cliente(cliente_id: int):
    """Elimina un cliente sin facturas."""
    try:
        almacen.borrar_cliente(cliente_id)
    except ValueError as e:
        _error(str(e))
    print("[green]✓ Cliente eliminado[/green]")


def _con_cambios(actual, esquema, **cambios):
    """Datos actuales + los campos indicados (None = sin cambio), validados."""
    datos = actual.model_dump()
    datos.update({k: v for k, v in cambios.items() if v is not None})
    return esquema.model_validate(datos)


@app.command("empresa-editar")
def edit_empresa(
    empresa_id: int,
    nombre: str = typer.Option(None),
    nif: str = typer.Option(None),
    direccion: str = typer.Option(None),
    codigo_postal: str = typer.Option(None),
    ciudad: str = typer.Option(None),
    provincia: str = typer.Option(None),
    pais: str = typer.Option(None),
    telefono: str = typer.Option(None),
    email: str = typer.Option(None),
    logo: str = typer.Option(None, help="Ruta del logo"),
):
    """Modifica una empresa (solo los campos indicados)."""
    try:
        actual = almacen.obtener_empresa(empresa_id)
        almacen.actualizar_empresa(empresa_id, _con_cambios(
            actual, EmpresaIn,
            nombre=nombre, nif=nif, direccion=direccion, codigo_postal=codigo_postal,
            ciudad=ciudad, provincia=provincia, pais=pais, telefono=telefono,
            email=email, logo=logo,
        ))
    except ValueError as e:
        _error(str(e))
    print("[green]✓ Empresa actualizada[/green]")


@app.command("cliente-editar")
def edit_cliente(
    cliente_id: int,
    nombre: str = typer.Option(None),
    nif: str = typer.Option(None),
    direccion: str = typer.Option(None),
    codigo_postal: str = typer.Option(None),
    ciudad: str = typer.Option(None),
    provincia: str = typer.Option(None),
    pais: str = typer.Option(None),
    telefono: str = typer.Option(None),
    email: str = typer.Option(None),
):
    """Modifica un cliente (solo los campos indicados)."""
    try:
        actual = almacen.obtener_cliente(cliente_id)
        almacen.actualizar_cliente(cliente_id, _con_cambios(
            actual, ClienteIn,
            nombre=nombre, nif=nif, direccion=direccion, codigo_postal=codigo_postal,
            ciudad=ciudad, provincia=provincia, pais=pais, telefono=telefono,
            email=email,
        ))
    except ValueError as e:
        _error(str(e))
    print("[green]✓ Cliente actualizado[/green]")


# ─────────────────────────────────────────────
# Facturas
# ─────────────────────────────────────────────

@app.command("emite")
def add_factura(
    numero: str,
    fecha: str,
    empresa_id: int,
    cliente_id: int,
    linea: list[str] = typer.Option(
        ..., "--linea", "-l",
        help="descripcion;cantidad;precio[;descuento[;iva]] (repetible)",
    ),
    vencimiento: str = typer.Option(None, help="Fecha de vencimiento YYYY-MM-DD"),
    descuento_global: str = typer.Option("0.00", help="Descuento global (%)"),
    recargo: bool = typer.Option(False, "--recargo", help="Aplica recargo de equivalencia"),
    retencion: str = typer.Option(None, help="Aplica retención IRPF con este tipo (%)"),
    notas: str = typer.Option(None),
):
    """Añade una factura emitida."""
    try:
        f = FacturaIn(
            numero=numero,
            fecha=date.fromisoformat(fecha),
            fecha_vencimiento=date.fromisoformat(vencimiento) if vencimiento else None,
            empresa_id=empresa_id,
            cliente_id=cliente_id,
            notas=notas,
            descuento_global=Decimal(descuento_global),
            aplicar_recargo=recargo,
            aplicar_retencion=retencion is not None,
            tipo_retencion=Decimal(retencion) if retencion is not None else Decimal("15.00"),
            lineas=[_parse_linea(l) for l in linea],
        )
        m = almacen.crear_factura(f)
    except (ValueError, InvalidOperation) as e:
        # ValidationError es subclase de ValueError
        _error(str(e))
    print(f"[green]✓ Factura guardada[/green] (id {m.id}, total {eur(desglose_factura(m)['total'])})")


@app.command("factura-editar")
def edit_factura(
    factura_id: int,
    numero: str = typer.Option(None),
    fecha: str = typer.Option(None, help="Fecha YYYY-MM-DD"),
    empresa: int = typer.Option(None, help="ID de la empresa emisora"),
    cliente: int = typer.Option(None, help="ID del cliente"),
    linea: list[str] = typer.Option(
        None, "--linea", "-l",
        help="Sustituye TODAS las líneas: descripcion;cantidad;precio[;descuento[;iva]]",
    ),
    vencimiento: str = typer.Option(None, help="Fecha de vencimiento YYYY-MM-DD"),
    descuento_global: str = typer.Option(None, help="Descuento global (%)"),
    recargo: bool = typer.Option(False, "--recargo", help="Aplica recargo de equivalencia"),
    sin_recargo: bool = typer.Option(False, "--sin-recargo", help="Quita el recargo de equivalencia"),
    retencion: str = typer.Option(None, help="Aplica retención IRPF con este tipo (%)"),
    sin_retencion: bool = typer.Option(False, "--sin-retencion", help="Quita la retención IRPF"),
    notas: str = typer.Option(None),
):
    """Modifica una factura (solo los campos indicados)."""
    try:
        actual = almacen.obtener_factura(factura_id)
        datos = actual.model_dump()
        datos["lineas"] = [l.model_dump() for l in actual.lineas]

        cambios = {
            "numero": numero,
            "fecha": date.fromisoformat(fecha) if fecha else None,
            "fecha_vencimiento": date.fromisoformat(vencimiento) if vencimiento else None,
            "empresa_id": empresa,
            "cliente_id": cliente,
            "notas": notas,
            "descuento_global": Decimal(descuento_global) if descuento_global is not None else None,
        }
        datos.update({k: v for k, v in cambios.items() if v is not None})
        if recargo or sin_recargo:
            datos["aplicar_recargo"] = recargo
        if retencion is not None:
            datos["aplicar_retencion"] = True
            datos["tipo_retencion"] = Decimal(retencion)
        if sin_retencion:
            datos["aplicar_retencion"] = False
        if linea:
            datos["lineas"] = [_parse_linea(l) for l in linea]

        m = almacen.actualizar_factura(factura_id, FacturaIn.model_validate(datos))
    except (ValueError, InvalidOperation) as e:
        _error(str(e))
    print(f"[green]✓ Factura actualizada[/green] (total {eur(desglose_factura(m)['total'])})")


@app.command("facturas")
def list_facturas(
    limit: int = typer.Option(200, help="Máximo de facturas a mostrar"),
    desc: bool = typer.Option(False, help="Orden descendente"),
    estado: EstadoFactura = typer.Option(None, help="Filtra por estado"),
    empresa: int = typer.Option(None, help="Filtra por ID de empresa"),
    buscar: str = typer.Option(None, help="Texto en número, empresa o cliente"),
):
    """Lista facturas emitidas."""
    facturas = almacen.listar_facturas(
        desc=desc, estado=estado, limit=limit, empresa_id=empresa, buscar=buscar,
    )
    clientes = {c.id: c.nombre for c in almacen.listar_clientes()}

    t = Table(title="Facturas emitidas")
    t.add_column("ID", justify="right")
    t.add_column("Número")
    t.add_column("Fecha")
    t.add_column("Cliente")
    t.add_column("Estado")
    t.add_column("Base", justify="right")
    t.add_column("IVA", justify="right")
    t.add_column("Total", justify="right")

    for f in facturas:
        d = desglose_factura(f)
        t.add_row(
            str(f.id or ""),
            f.numero,
            f.fecha.isoformat(),
            clientes.get(f.cliente_id, ""),
            f.estado.value,
            eur(d["base_imponible"]),
            eur(d["iva"]),
            eur(d["total"]),
        )

    print(t)


@app.command("ver")
def ver_factura(factura_id: int):
    """Muestra las líneas y el desglose de una factura."""
    try:
        f = almacen.obtener_factura(factura_id)
    except ValueError as e:
        _error(str(e))

    t = Table(title=f"Factura {f.numero} ({f.estado.value})")
    t.add_column("Descripción")
    t.add_column("Cantidad", justify="right")
    t.add_column("Precio", justify="right")
    t.add_column("Dto.", justify="right")
    t.add_column("Base", justify="right")
    t.add_column("IVA", justify="right")
    t.add_column("Total", justify="right")
    for l in f.lineas:
        imp = importes_linea(l)
        t.add_row(
            l.descripcion,
            format(l.cantidad.normalize(), "f"),
            eur(l.precio),
            pct(l.descuento),
            eur(imp["base"]),
            pct(l.tipo_iva),
            eur(imp["total"]),
        )
    print(t)

    r = Table(title="Resumen")
    r.add_column("Concepto")
    r.add_column("Importe", justify="right")
    for concepto, importe in filas_resumen(f, desglose_factura(f)):
        if concepto == "TOTAL":
            r.add_row(f"[bold]{concepto}[/bold]", f"[bold]{eur(importe)}[/bold]")
        else:
            r.add_row(concepto, eur(importe))
    print(r)


@app.command("estado")
def set_estado(factura_id: int, estado: EstadoFactura):
    """Cambia el estado de una factura."""
    try:
        almacen.cambiar_estado(factura_id, estado)
    except ValueError as e:
        _error(str(e))
    print(f"[green]✓ Factura {factura_id}: {estado.value}[/green]")


@app.command("borrar")
def del_factura(factura_id: int):
    """Elimina una factura."""
    try:
        almacen.borrar_factura(factura_id)
    except ValueError as e:
        _error(str(e))
    print("[green]✓ Factura eliminada[/green]")


@app.command("pdf")
def pdf_factura(
    factura_id: int,
    outdir: str = typer.Option(EXPORT_DIR, help="Directorio de salida"),
):
    """Genera el PDF de una factura."""
    try:
        f = almacen.obtener_factura(factura_id)
        empresa = almacen.obtener_empresa(f.empresa_id)
        cliente = almacen.obtener_cliente(f.cliente_id)
    except ValueError as e:
        _error(str(e))
    ruta = generar_pdf(f, empresa, cliente, ruta_exportacion(outdir, f"factura-{f.numero}.pdf"))
    print(f"[green]✓ PDF generado:[/green] {ruta}")


@app.command("panel")
def panel():
    """Resumen de la actividad de facturación."""
    r = resumen_panel(almacen.listar_facturas())

    t = Table(title="Panel")
    t.add_column("Concepto")
    t.add_column("Valor", justify="right")
    t.add_row("Facturas", str(r["num_facturas"]))
    t.add_row("Pendientes de cobro", str(r["pendientes"]))
    t.add_row("Pagadas", str(r["pagadas"]))
    t.add_row("[bold]Importe total[/bold]", f"[bold]{eur(r['importe_total'])}[/bold]")
    print(t)

    te = Table(title="Por estado")
    te.add_column("Estado")
    te.add_column("Importe", justify="right")
    for estado, importe in r["por_estado"].items():
        te.add_row(estado.value, eur(importe))
    print(te)

    if r["por_mes"]:
        tm = Table(title="Por mes")
        tm.add_column("Mes")
        tm.add_column("Importe", justify="right")
        for mes, importe in r["por_mes"].items():
            tm.add_row(mes, eur(importe))
        print(tm)

    if r["recientes"]:
        tr = Table(title="Facturas recientes")
        tr.add_column("Número")
        tr.add_column("Fecha")
        tr.add_column("Estado")
        for f in r["recientes"]:
            tr.add_row(f.numero, f.fecha.isoformat(), f.estado.value)
        print(tr)


@app.command("exportar")
def exportar(
    formato: str = typer.Argument("json", help="json o xml"),
    outdir: str = typer.Option(EXPORT_DIR, help="Directorio de salida"),
):
    """Exporta los datos (json: todo; xml: facturas)."""
    facturas = almacen.listar_facturas()
    if formato == "json":
        ruta = exportar_json(
            almacen.listar_empresas(),
            almacen.listar_clientes(),
            facturas,
            ruta_exportacion(outdir, "facturas.json"),
        )
    elif formato == "xml":
        ruta = exportar_xml(facturas, ruta_exportacion(outdir, "facturas.xml"))
    else:
        _error("Formato inválido. Usa json o xml")
    print(f"[green]✓ Exportado:[/green] {ruta}")


@app.command("importar")
def importar(fichero: Path = typer.Argument(..., exists=True, dir_okay=False)):
    """Importa un JSON exportado con `exportar json`."""
    try:
        res = importar_json(fichero.read_text(encoding="utf-8"))
    except ValueError as e:
        _error(str(e))
    print(
        f"[green]✓ Importado:[/green] {res['empresas']} empresas, "
        f"{res['clientes']} clientes, {res['facturas']} facturas "
        f"({res['omitidas']} omitidas)"
    )


@app.command("libro")
def libro(
    periodo: str = typer.Argument(..., help="Periodo en formato YYYYQ#, ej: 2025Q3"),
    outdir: str = typer.Option(EXPORT_DIR, help="Directorio de salida"),
):
    """Exporta el libro de facturas emitidas de un trimestre (CSV)."""
    try:
        res = export_libros(periodo, outdir)
    except ValueError as e:
        _error(str(e))
    print(f"[green]✓ Libro exportado:[/green] {res['emitidas']} ({res['filas']} facturas)")
