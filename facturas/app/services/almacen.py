import logging

from sqlalchemy.orm import selectinload
from sqlmodel import col, or_, select

from ..db import get_session
from ..models import Cliente, Empresa, EstadoFactura, Factura, LineaFactura
from ..schemas import ClienteIn, EmpresaIn, FacturaIn


logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────
# EMPRESAS
# ─────────────────────────────────────────────

def crear_empresa(datos: EmpresaIn) -> Empresa:
    m = Empresa(**datos.model_dump())
    with get_session() as s:
        s.add(m)
        s.commit()
        s.refresh(m)
    logger.info("Empresa %s guardada (id=%s)", m.nombre, m.id)
    return m


def obtener_empresa(empresa_id: int) -> Empresa:
    with get_session() as s:
        m = s.get(Empresa, empresa_id)
    if m is None:
        raise ValueError(f"No existe la empresa {empresa_id}")
    return m


def listar_empresas() -> list[Empresa]:
    with get_session() as s:
        return list(s.exec(select(Empresa).order_by(Empresa.nombre)).all())


def actualizar_empresa(empresa_id: int, datos: EmpresaIn) -> Empresa:
    with get_session() as s:
        m = s.get(Empresa, empresa_id)
        if m is None:
            raise ValueError(f"No existe la empresa {empresa_id}")
        m.sqlmodel_update(datos.model_dump())
        s.add(m)
        s.commit()
        s.refresh(m)
    return m


def borrar_empresa(empresa_id: int) -> None:
    with get_session() as s:
        m = s.get(Empresa, empresa_id)
        if m is None:
            raise ValueError(f"No existe la empresa {empresa_id}")
        en_uso = s.exec(
            select(Factura).where(Factura.empresa_id == empresa_id)
        ).first()
        if en_uso:
            raise ValueError(
                "No se puede eliminar una empresa que tiene facturas asociadas"
            )
        s.delete(m)
        s.commit()
    logger.info("Empresa %s eliminada", empresa_id)


# ─────────────────────────────────────────────
# CLIENTES
# ─────────────────────────────────────────────

def crear_cliente(datos: ClienteIn) -> Cliente:
    m = Cliente(**datos.model_dump())
    with get_session() as s:
        s.add(m)
        s.commit()
        s.refresh(m)
    logger.info("Cliente %s guardado (id=%s)", m.nombre, m.id)
    return m


def obtener_cliente(cliente_id: int) -> Cliente:
    with get_session() as s:
        m = s.get(Cliente, cliente_id)
    if m is None:
        raise ValueError(f"No existe el cliente {cliente_id}")
    return m


def listar_clientes() -> list[Cliente]:
    with get_session() as s:
        return list(s.exec(select(Cliente).order_by(Cliente.nombre)).all())


def actualizar_cliente(cliente_id: int, datos: ClienteIn) -> Cliente:
    with get_session() as s:
        m = s.get(Cliente, cliente_id)
        if m is None:
            raise ValueError(f"No existe el cliente {cliente_id}")
        m.sqlmodel_update(datos.model_dump())
        s.add(m)
        s.commit()
        s.refresh(m)
    return m


def borrar_cliente(cliente_id: int) -> None:
    with get_session() as s:
        m = s.get(Cliente, cliente_id)
        if m is None:
            raise ValueError(f"No existe el cliente {cliente_id}")
        en_uso = s.exec(
            select(Factura).where(Factura.cliente_id == cliente_id)
        ).first()
        if en_uso:
            raise ValueError(
                "No se puede eliminar un cliente que tiene facturas asociadas"
            )
        s.delete(m)
        s.commit()
    logger.info("Cliente %s eliminado", cliente_id)


# ─────────────────────────────────────────────
# FACTURAS
# ─────────────────────────────────────────────

def _lineas_modelo(f: FacturaIn) -> list[LineaFactura]:
    return [
        LineaFactura(orden=i, **l.model_dump())
        for i, l in enumerate(f.lineas)
    ]


def _comprobar_referencias(s, f: FacturaIn) -> None:
    if s.get(Empresa, f.empresa_id) is None:
        raise ValueError(f"No existe la empresa {f.empresa_id}")
    if s.get(Cliente, f.cliente_id) is None:
        raise ValueError(f"No existe el cliente {f.cliente_id}")


def crear_factura(f: FacturaIn) -> Factura:
    with get_session() as s:
        _comprobar_referencias(s, f)
        # Evita duplicados por numero
        existing = s.exec(select(Factura).where(Factura.numero == f.numero)).first()
        if existing:
            raise ValueError("Ya existe una factura con ese número")
        m = Factura(**f.model_dump(exclude={"lineas"}))
        m.lineas = _lineas_modelo(f)
        s.add(m)
        s.commit()
        factura_id = m.id
    logger.info("Factura %s guardada (%d líneas)", f.numero, len(f.lineas))
    return obtener_factura(factura_id)


def obtener_factura(factura_id: int) -> Factura:
    stmt = (
        select(Factura)
        .where(Factura.id == factura_id)
        .options(selectinload(Factura.lineas))
    )
    with get_session() as s:
        m = s.exec(stmt).first()
    if m is None:
        raise ValueError(f"No existe la factura {factura_id}")
    return m


def listar_facturas(
    desc: bool = False,
    estado: EstadoFactura | None = None,
    limit: int | None = None,
    empresa_id: int | None = None,
    buscar: str | None = None,
) -> list[Factura]:
    """
    `buscar` filtra, sin distinguir mayúsculas, por número de factura o
    nombre de empresa o cliente.
    """
    stmt = select(Factura).options(selectinload(Factura.lineas))
    if estado is not None:
        stmt = stmt.where(Factura.estado == estado)
    if empresa_id is not None:
        stmt = stmt.where(Factura.empresa_id == empresa_id)
    if buscar:
        patron = f"%{buscar}%"
        stmt = (
            stmt.join(Empresa, Empresa.id == Factura.empresa_id)
            .join(Cliente, Cliente.id == Factura.cliente_id)
            .where(or_(
                col(Factura.numero).ilike(patron),
                col(Empresa.nombre).ilike(patron),
                col(Cliente.nombre).ilike(patron),
            ))
        )
    stmt = stmt.order_by(
        Factura.fecha.desc() if desc else Factura.fecha,
        Factura.numero.desc() if desc else Factura.numero,
    )
    if limit is not None and limit > 0:
        stmt = stmt.limit(limit)

    with get_session() as s:
        return list(s.exec(stmt).all())


def actualizar_factura(factura_id: int, f: FacturaIn) -> Factura:
    """Sustituye cabecera y líneas de la factura."""
    with get_session() as s:
        m = s.get(Factura, factura_id)
        if m is None:
            raise ValueError(f"No existe la factura {factura_id}")
        _comprobar_referencias(s, f)
        otra = s.exec(
            select(Factura).where(Factura.numero == f.numero, Factura.id != factura_id)
        ).first()
        if otra:
            raise ValueError("Ya existe una factura con ese número")
        m.sqlmodel_update(f.model_dump(exclude={"lineas"}))
        m.lineas = _lineas_modelo(f)
        s.add(m)
        s.commit()
    logger.info("Factura %s actualizada", f.numero)
    return obtener_factura(factura_id)


def cambiar_estado(factura_id: int, estado: EstadoFactura) -> Factura:
    with get_session() as s:
        m = s.get(Factura, factura_id)
        if m is None:
            raise ValueError(f"No existe la factura {factura_id}")
        m.estado = estado
        s.add(m)
        s.commit()
    logger.info("Factura %s → %s", factura_id, estado.value)
    return obtener_factura(factura_id)


def borrar_factura(factura_id: int) -> None:
    with get_session() as s:
        m = s.get(Factura, factura_id)
        if m is None:
            raise ValueError(f"No existe la factura {factura_id}")
        s.delete(m)
        s.commit()
    logger.info("Factura %s eliminada", factura_id)


# ─────────────────────────────────────────────
# IMPORTACIÓN
# ─────────────────────────────────────────────

def _por_nif(s, modelo, datos):
    existente = s.exec(select(modelo).where(modelo.nif == datos.nif)).first()
    if existente:
        return existente, False
    m = modelo(**datos.model_dump())
    s.add(m)
    s.flush()
    return m, True


def importar_lote(
    empresas: list[tuple[int | None, EmpresaIn]],
    clientes: list[tuple[int | None, ClienteIn]],
    facturas: list[FacturaIn],
) -> dict:
    """
    Guarda un lote ya validado en una sola transacción.

    `empresas` y `clientes` van con su id de origen, al que apuntan las
    facturas. Empresas y clientes con un NIF ya registrado se reutilizan;
    facturas con número ya existente se omiten. Si algo falla no se guarda
    nada.
    """
    res = {"empresas": 0, "clientes": 0, "facturas": 0, "omitidas": 0}
    ids_empresa: dict[int | None, int] = {}
    ids_cliente: dict[int | None, int] = {}

    with get_session() as s:
        for viejo_id, datos in empresas:
            m, nueva = _por_nif(s, Empresa, datos)
            ids_empresa[viejo_id] = m.id
            res["empresas"] += nueva

        for viejo_id, datos in clientes:
            m, nuevo = _por_nif(s, Cliente, datos)
            ids_cliente[viejo_id] = m.id
            res["clientes"] += nuevo

        existentes = set(s.exec(select(Factura.numero)).all())
        for f in facturas:
            if f.numero in existentes:
                logger.warning("Factura %s ya existe, se omite", f.numero)
                res["omitidas"] += 1
                continue
            f = f.model_copy(update={
                "empresa_id": ids_empresa.get(f.empresa_id, f.empresa_id),
                "cliente_id": ids_cliente.get(f.cliente_id, f.cliente_id),
            })
            _comprobar_referencias(s, f)
            m = Factura(**f.model_dump(exclude={"lineas"}))
            m.lineas = _lineas_modelo(f)
            s.add(m)
            existentes.add(f.numero)
            res["facturas"] += 1

        s.commit()

    logger.info("Lote importado: %s", res)
    return res
