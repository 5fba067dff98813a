"""Numeri di telefono tunisini (+216 seguito da 8 cifre)."""
from __future__ import annotations

import re

PREFISSO = "+216"

# cellulari e fissi: 2x, 4x, 5x, 9x
_TELEFONO_RE = re.compile(r"^(\+216)?[2459]\d{7}$")


def formatta_telefono(telefono: str) -> str:
    """
    Normalizza in +216XXXXXXXX.
    "98 765 432" -> "+21698765432", "0021698765432" -> "+21698765432"
    """
    cifre = re.sub(r"\D", "", telefono or "")
    if cifre.startswith("00216"):
        cifre = cifre[2:]
    if cifre.startswith("216") and len(cifre) > 8:
        return f"+{cifre}"
    return f"{PREFISSO}{cifre}"


def telefono_valido(telefono: str) -> bool:
    return bool(_TELEFONO_RE.match(formatta_telefono(telefono)))
