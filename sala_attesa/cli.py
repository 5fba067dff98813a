from __future__ import annotations

import argparse

from sqlalchemy import select

from .auth_service import crea_clinica
from .db import db_session, init_db
from .errori import ErroreServizio
from .models import Clinica, MetodoCheckIn
from .seed import seed_demo
from .services import aggiungi_paziente, chiama_prossimo, get_coda, reset_notturno


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    if args.demo:
        clinica_id = seed_demo()
        print(f"DB inizializzato, clinica demo: {clinica_id}")
    else:
        print("DB inizializzato.")


def cmd_list(args: argparse.Namespace) -> None:
    with db_session() as s:
        righe = s.execute(
            select(Clinica.id, Clinica.nome, Clinica.email, Clinica.attiva).order_by(Clinica.nome)
        ).all()
    for r in righe:
        print(f"{r.id} | {r.nome} | {r.email} | {'attiva' if r.attiva else 'disattivata'}")


def cmd_add_clinic(args: argparse.Namespace) -> None:
    cid = crea_clinica(
        nome=args.nome,
        email=args.email,
        password=args.password,
        nome_medico=args.medico,
        tipo_attivita=args.tipo,
    )
    print(f"Clinica creata: {cid}")


def cmd_checkin(args: argparse.Namespace) -> None:
    esito = aggiungi_paziente(args.clinica_id, args.telefono, args.nome, metodo=MetodoCheckIn.MANUAL)
    v = esito.voce
    if esito.gia_in_coda:
        print(f"Già in coda: #{v['posizione']} ({v['stato']}) id={v['id']}")
    else:
        print(f"In coda: #{v['posizione']} ({v['stato']}) id={v['id']}")


def cmd_queue(args: argparse.Namespace) -> None:
    dati = get_coda(args.clinica_id)
    if not dati["coda"]:
        print("Coda vuota.")
    for v in dati["coda"]:
        print(f"#{v['posizione']} | {v['stato']:<15} | {v['nome_paziente'] or '-'} | {v['telefono_paziente']}")
    st = dati["statistiche"]
    print(
        f"In attesa: {st['in_attesa']} | visti oggi: {st['visti']} | "
        f"attesa media: {st['attesa_media'] if st['attesa_media'] is not None else '-'} min"
    )


def cmd_next(args: argparse.Namespace) -> None:
    voce = chiama_prossimo(args.clinica_id)
    if not voce:
        print("Nessun paziente in attesa.")
        return
    print(f"In visita: {voce['nome_paziente'] or voce['telefono_paziente']} (id={voce['id']})")


def cmd_reset(args: argparse.Namespace) -> None:
    for nome, cancellate in reset_notturno():
        print(f"{nome}: {cancellate} voci cancellate, medico assente")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="sala_attesa", description="CLI Sala d'Attesa (gestione coda da terminale)")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Crea DB (ed eventualmente dati demo)")
    p_init.add_argument("--demo", action="store_true", help="Carica clinica e coda demo")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="Lista cliniche")
    p_list.set_defaults(func=cmd_list)

    p_addc = sub.add_parser("add-clinic", help="Crea clinica")
    p_addc.add_argument("--nome", required=True)
    p_addc.add_argument("--email", required=True)
    p_addc.add_argument("--password", required=True)
    p_addc.add_argument("--medico", default=None)
    p_addc.add_argument("--tipo", choices=["medical", "retail"], default="medical")
    p_addc.set_defaults(func=cmd_add_clinic)

    p_chk = sub.add_parser("checkin", help="Aggiunge un paziente alla coda")
    p_chk.add_argument("--clinica-id", required=True)
    p_chk.add_argument("--telefono", required=True)
    p_chk.add_argument("--nome", default=None)
    p_chk.set_defaults(func=cmd_checkin)

    p_queue = sub.add_parser("queue", help="Mostra la coda attiva")
    p_queue.add_argument("--clinica-id", required=True)
    p_queue.set_defaults(func=cmd_queue)

    p_next = sub.add_parser("next", help="Chiama il prossimo paziente")
    p_next.add_argument("--clinica-id", required=True)
    p_next.set_defaults(func=cmd_next)

    p_reset = sub.add_parser("reset-notturno", help="Svuota le code e imposta i medici assenti")
    p_reset.set_defaults(func=cmd_reset)

    return p


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    init_db()  # garantisce tabelle
    try:
        args.func(args)
    except ErroreServizio as e:
        print(f"Errore [{e.codice}]: {e.messaggio}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
