from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from .models import EstadoFactura


class DatosFiscalesIn(BaseModel):
    nombre: str
    nif: str
    direccion: str
    codigo_postal: str
    ciudad: str
    provincia: str
    pais: str = "España"
    telefono: str | None = None
    email: str | None = None


class EmpresaIn(DatosFiscalesIn):
    logo: str | None = None


class ClienteIn(DatosFiscalesIn):
    pass


class LineaIn(BaseModel):
    descripcion: str = ""
    cantidad: Decimal = Field(ge=0)
    precio: Decimal = Field(ge=0)
    descuento: Decimal = Field(default=Decimal("0.00"), ge=0, le=100)
    tipo_iva: Decimal = Field(default=Decimal("21.00"), ge=0, le=100)

    @field_validator("descuento", mode="before")
    @classmethod
    def _descuento_vacio(cls, v):
        # en JSON importado puede venir null
        return Decimal("0.00") if v is None else v


class FacturaIn(BaseModel):
    numero: str
    fecha: date
    fecha_vencimiento: date | None = None
    empresa_id: int
    cliente_id: int
    notas: str | None = None
    descuento_global: Decimal = Field(default=Decimal("0.00"), ge=0, le=100)
    aplicar_recargo: bool = False
    aplicar_retencion: bool = False
    tipo_retencion: Decimal = Field(default=Decimal("15.00"), ge=0, le=100)
    estado: EstadoFactura = EstadoFactura.borrador
    lineas: list[LineaIn] = Field(default_factory=list)

    @field_validator("descuento_global", mode="before")
    @classmethod
    def _descuento_global_vacio(cls, v):
        return Decimal("0.00") if v is None else v

    @field_validator("aplicar_recargo", "aplicar_retencion", mode="before")
    @classmethod
    def _flag_vacio(cls, v):
        return False if v is None else v
