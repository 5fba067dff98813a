import pytest

from sala_attesa.telefono import formatta_telefono, telefono_valido


@pytest.mark.parametrize(
    "grezzo, atteso",
    [
        ("98765432", "+21698765432"),
        ("98 765 432", "+21698765432"),
        ("+216 98 765 432", "+21698765432"),
        ("0021698765432", "+21698765432"),
        ("21698765432", "+21698765432"),
    ],
)
def test_formatta_telefono(grezzo, atteso):
    assert formatta_telefono(grezzo) == atteso


@pytest.mark.parametrize("telefono", ["20123456", "+21641234567", "50 000 000", "9 1234567"])
def test_telefono_valido(telefono):
    assert telefono_valido(telefono)


@pytest.mark.parametrize("telefono", ["12345678", "3123456", "+33612345678", "", "2012345"])
def test_telefono_non_valido(telefono):
    assert not telefono_valido(telefono)
