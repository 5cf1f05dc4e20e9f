from decimal import Decimal, ROUND_HALF_UP


TWOPLACES = Decimal("0.01")


def redondear(importe) -> Decimal:
    return Decimal(importe).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def _es(v: Decimal) -> str:
    """'1234567.50' → '1.234.567,50'"""
    return format(v, ",.2f").replace(",", "_").replace(".", ",").replace("_", ".")


def eur(importe) -> str:
    """
    Importe en formato es-ES, p. ej. Decimal('2409.5') → '2.409,50 €'.

    Solo para mostrar: el redondeo se hace aquí, al final, y nunca vuelve
    a los cálculos.
    """
    return f"{_es(redondear(importe))} €"


def pct(valor) -> str:
    return f"{_es(redondear(valor))}%"
