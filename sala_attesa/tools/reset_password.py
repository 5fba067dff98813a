from __future__ import annotations

import sys

from sqlalchemy import select

from ..auth_service import cambia_password
from ..db import db_session, init_db
from ..errori import ErroreServizio
from ..models import Clinica


def main() -> None:
    if len(sys.argv) < 3:
        print("Uso: python -m sala_attesa.tools.reset_password <email> <nuova_password>")
        raise SystemExit(2)

    email = sys.argv[1].strip().lower()
    if not email:
        print("Email non valida.")
        raise SystemExit(2)

    init_db()
    with db_session() as s:
        clinica_id = s.execute(select(Clinica.id).where(Clinica.email == email)).scalar_one_or_none()

    if not clinica_id:
        print(f"Nessuna clinica con email '{email}'.")
        raise SystemExit(1)

    try:
        cambia_password(clinica_id, sys.argv[2])
    except ErroreServizio as e:
        print(e.messaggio)
        raise SystemExit(2)

    print(f"OK: password della clinica '{email}' aggiornata.")


if __name__ == "__main__":
    main()
