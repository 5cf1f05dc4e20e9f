from datetime import date
from decimal import Decimal
from enum import Enum

from sqlmodel import Field, Relationship, SQLModel


class EstadoFactura(str, Enum):
    borrador = "borrador"
    enviada = "enviada"
    pagada = "pagada"
    anulada = "anulada"


class DatosFiscales(SQLModel):
    nombre: str
    nif: str
    direccion: str
    codigo_postal: str
    ciudad: str
    provincia: str
    pais: str = "España"
    telefono: str | None = None
    email: str | None = None


class Empresa(DatosFiscales, table=True):
    id: int | None = Field(default=None, primary_key=True)
    logo: str | None = None


class Cliente(DatosFiscales, table=True):
    id: int | None = Field(default=None, primary_key=True)


class Factura(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    numero: str = Field(index=True, unique=True)
    fecha: date = Field(index=True)
    fecha_vencimiento: date | None = None
    empresa_id: int = Field(foreign_key="empresa.id", index=True)
    cliente_id: int = Field(foreign_key="cliente.id", index=True)
    notas: str | None = None
    descuento_global: Decimal = Decimal("0.00")
    aplicar_recargo: bool = False
    aplicar_retencion: bool = False
    tipo_retencion: Decimal = Decimal("15.00")
    estado: EstadoFactura = EstadoFactura.borrador

    lineas: list["LineaFactura"] = Relationship(
        back_populates="factura",
        sa_relationship_kwargs={
            "order_by": "LineaFactura.orden",
            "cascade": "all, delete-orphan",
            "lazy": "selectin",
        },
    )


class LineaFactura(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    factura_id: int | None = Field(default=None, foreign_key="factura.id", index=True)
    orden: int = 0
    descripcion: str
    cantidad: Decimal
    precio: Decimal
    descuento: Decimal = Decimal("0.00")
    tipo_iva: Decimal = Decimal("21.00")

    factura: Factura | None = Relationship(back_populates="lineas")
