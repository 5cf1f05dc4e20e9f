from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from facturas.app import db
from facturas.app import models  # noqa: F401  (registra las tablas)
from facturas.app.schemas import ClienteIn, EmpresaIn, FacturaIn, LineaIn


@pytest.fixture
def bd(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    monkeypatch.setattr(db, "engine", engine)
    yield engine
    engine.dispose()


@pytest.fixture
def empresa_in():
    return EmpresaIn(
        nombre="Papelería Soler SL",
        nif="B12345678",
        direccion="Carrer Major 1",
        codigo_postal="08001",
        ciudad="Barcelona",
        provincia="Barcelona",
        email="hola@soler.example",
    )


@pytest.fixture
def cliente_in():
    return ClienteIn(
        nombre="Comercial Ruiz & Hijos",
        nif="A87654321",
        direccion="Calle Real 5",
        codigo_postal="28001",
        ciudad="Madrid",
        provincia="Madrid",
    )


def factura_in(empresa_id=1, cliente_id=1, numero="2025-001", fecha=date(2025, 3, 10), **kw):
    lineas = kw.pop(
        "lineas",
        [
            LineaIn(descripcion="Consultoría", cantidad=1, precio=Decimal("1500"), tipo_iva=21),
            LineaIn(descripcion="Soporte", cantidad=1, precio=Decimal("500"), descuento=10, tipo_iva=21),
        ],
    )
    return FacturaIn(
        numero=numero,
        fecha=fecha,
        empresa_id=empresa_id,
        cliente_id=cliente_id,
        lineas=lineas,
        **kw,
    )


@pytest.fixture
def nueva_factura():
    return factura_in
