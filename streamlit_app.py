from __future__ import annotations

import base64
import json
import os
from datetime import date, datetime, timezone

import requests
import streamlit as st

st.set_page_config(page_title="Sala d'Attesa", layout="wide")

API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000")

STATI_LABEL = {
    "WAITING": "In attesa",
    "NOTIFIED": "Avvisato",
    "IN_CONSULTATION": "In visita",
    "COMPLETED": "Completato",
    "NO_SHOW": "Assente",
    "CANCELLED": "Annullato",
}



# JWT helpers (solo per UI, senza verifica firma)

def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def jwt_payload(token: str) -> dict:
    try:
        parts = token.split(".")
        if len(parts) != 3:
            return {}
        payload = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
        return payload if isinstance(payload, dict) else {}
    except (ValueError, UnicodeDecodeError):
        return {}


def jwt_is_expired(token: str) -> bool:
    p = jwt_payload(token)
    exp = p.get("exp")
    try:
        exp_int = int(exp)
    except (TypeError, ValueError):
        return False

    now = int(datetime.now(tz=timezone.utc).timestamp())
    return now >= (exp_int - 5)


def jwt_nome(token: str) -> str:
    p = jwt_payload(token)
    return str(p.get("name") or p.get("email") or "clinica")



# HTTP client (con JWT)

class ApiError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message


def _headers(token: str | None) -> dict:
    return {"Authorization": f"Bearer {token}"} if token else {}


def _risposta(r: requests.Response):
    if r.status_code == 401:
        raise PermissionError("401 Unauthorized (token non valido/scaduto).")
    if r.status_code == 204:
        return None
    try:
        body = r.json()
    except ValueError:
        r.raise_for_status()
        return None
    if r.status_code >= 400:
        err = body.get("error") or {}
        raise ApiError(err.get("code", str(r.status_code)), err.get("message", r.reason))
    return body.get("data")


def api_get(path: str, token: str | None = None, params: dict | None = None):
    r = requests.get(f"{API_BASE}{path}", headers=_headers(token), params=params, timeout=10)
    return _risposta(r)


def api_post(path: str, payload: dict | None = None, token: str | None = None):
    r = requests.post(f"{API_BASE}{path}", headers=_headers(token), json=payload or {}, timeout=10)
    return _risposta(r)


def api_patch(path: str, payload: dict, token: str | None = None):
    r = requests.patch(f"{API_BASE}{path}", headers=_headers(token), json=payload, timeout=10)
    return _risposta(r)


def api_delete(path: str, token: str | None = None):
    r = requests.delete(f"{API_BASE}{path}", headers=_headers(token), timeout=10)
    return _risposta(r)


def api_login(email: str, password: str) -> dict:
    return api_post("/api/auth/login", {"email": email, "password": password})


def is_logged_in() -> bool:
    token = st.session_state.get("token")
    return bool(token) and isinstance(token, str) and len(token) > 0


def do_logout() -> None:
    for k in ("token", "clinica", "auth_error"):
        st.session_state.pop(k, None)
    st.rerun()


def require_auth() -> str | None:
    token = st.session_state.get("token")
    if not token:
        st.warning("Sezione riservata. Effettua il login dalla sidebar.")
        return None

    if jwt_is_expired(token):
        st.error("Sessione scaduta. Effettua Logout dalla sidebar e rifai login.")
        return None

    return token


def errore_sessione(e: PermissionError) -> None:
    st.session_state["auth_error"] = str(e)
    st.error("Sessione non valida. Premi Logout e rifai login.")



# Sidebar login

with st.sidebar:
    st.header("Accesso clinica")

    token = st.session_state.get("token")

    if not is_logged_in():
        u = st.text_input("Email", key="login_user")
        p = st.text_input("Password", type="password", key="login_pass")

        if st.button("Login", key="login_btn"):
            try:
                res = api_login(u.strip().lower(), p)
                st.session_state["token"] = res["token"]
                st.session_state["clinica"] = res["clinica"]
                st.session_state.pop("auth_error", None)
                st.success("Login effettuato.")
                st.rerun()
            except ApiError as e:
                st.error("Credenziali non valide." if e.code == "INVALID_CREDENTIALS" else e.message)
            except requests.RequestException as e:
                st.error(str(e))
    else:
        st.write(f"Clinica: **{jwt_nome(token)}**")

        if st.session_state.get("auth_error"):
            st.error(st.session_state["auth_error"])

        if st.button("Logout", key="logout_btn"):
            do_logout()

    st.divider()
    st.caption(f"API: {API_BASE}")



# UI

st.title("Sala d'Attesa (coda pazienti + agenda)")

tab1, tab2, tab3, tab4 = st.tabs(["Coda", "Check-in paziente", "Agenda", "Admin"])



# TAB 1 - Dashboard coda (PROTETTO)

with tab1:
    st.subheader("Coda di oggi")

    token = require_auth()
    if token:
        try:
            clinica = api_get("/api/clinic", token=token)
            dati = api_get("/api/queue", token=token)
        except PermissionError as e:
            errore_sessione(e)
            clinica, dati = None, None
        except (ApiError, requests.RequestException) as e:
            st.error(f"Errore caricamento coda: {e}")
            clinica, dati = None, None

        if clinica and dati:
            etichette = clinica["etichette_ui"]
            st_ = dati["statistiche"]

            c1, c2, c3, c4 = st.columns(4)
            c1.metric("In attesa", st_["in_attesa"])
            c2.metric("Visti oggi", st_["visti"])
            c3.metric("Attesa media (min)", st_["attesa_media"] if st_["attesa_media"] is not None else "-")
            c4.metric("Assenti", st_["assenti"])

            colA, colB = st.columns(2)
            presente = clinica["medico_presente"]
            colA.write(etichette["presenceOn"] if presente else etichette["presenceOff"])
            if colA.button("Cambia presenza", key="presenza_btn"):
                try:
                    api_post("/api/clinic/doctor-presence", {"presente": not presente}, token=token)
                    st.rerun()
                except ApiError as e:
                    st.error(e.message)

            if colB.button("Chiama il prossimo", key="next_btn", type="primary"):
                try:
                    v = api_post("/api/queue/next", token=token)
                    st.success(f"In visita: {v['nome_paziente'] or v['telefono_paziente']}")
                    st.rerun()
                except ApiError as e:
                    st.warning(e.message)

            st.divider()

            if not dati["coda"]:
                st.info(etichette["noCustomers"])
            for v in dati["coda"]:
                cA, cB, cC = st.columns([4, 2, 1])
                cA.write(
                    f"**#{v['posizione']}** {v['nome_paziente'] or '-'} | {v['telefono_paziente']} | "
                    f"{STATI_LABEL.get(v['stato'], v['stato'])}"
                )
                nuovo = cB.selectbox(
                    "Stato",
                    options=list(STATI_LABEL),
                    index=list(STATI_LABEL).index(v["stato"]),
                    format_func=lambda s: STATI_LABEL[s],
                    key=f"stato_{v['id']}",
                    label_visibility="collapsed",
                )
                if nuovo != v["stato"]:
                    try:
                        api_patch(f"/api/queue/{v['id']}/status", {"stato": nuovo}, token=token)
                        st.rerun()
                    except ApiError as e:
                        st.error(e.message)
                if cC.button("Rimuovi", key=f"rm_{v['id']}"):
                    api_delete(f"/api/queue/{v['id']}", token=token)
                    st.rerun()

            with st.expander(etichette["addCustomer"]):
                c1, c2, c3 = st.columns(3)
                tel = c1.text_input("Telefono", key="add_tel")
                nome = c2.text_input("Nome (opzionale)", key="add_nome")
                orario = c3.text_input("Orario appuntamento HH:MM (opzionale)", key="add_orario")
                if st.button("Aggiungi", key="add_btn"):
                    payload = {"telefono": tel.strip(), "nome": nome.strip() or None}
                    if orario.strip():
                        payload["orario_appuntamento"] = orario.strip()
                    try:
                        v = api_post("/api/queue", payload, token=token)
                        st.success(f"Aggiunto in posizione {v['posizione']}.")
                        st.rerun()
                    except ApiError as e:
                        st.error(e.message)

            with st.expander("Sposta paziente"):
                if dati["coda"]:
                    voce = st.selectbox(
                        "Paziente",
                        options=dati["coda"],
                        format_func=lambda v: f"#{v['posizione']} {v['nome_paziente'] or v['telefono_paziente']}",
                        key="rio_voce",
                    )
                    pos = st.number_input(
                        "Nuova posizione", min_value=1, max_value=len(dati["coda"]), value=1, key="rio_pos"
                    )
                    if st.button("Sposta", key="rio_btn"):
                        try:
                            api_post("/api/queue/reorder", {"voce_id": voce["id"], "nuova_posizione": int(pos)}, token=token)
                            st.rerun()
                        except ApiError as e:
                            st.error(e.message)

            with st.expander("QR code check-in"):
                qr = api_get("/api/clinic/qr", token=token)
                st.image(base64.b64decode(qr["qr"].split(",", 1)[1]), width=240)
                st.code(qr["url"])

            with st.expander("Fine giornata"):
                c1, c2 = st.columns(2)
                if c1.button("Svuota coda", key="svuota_btn"):
                    n = api_delete("/api/queue", token=token)["cancellate"]
                    st.success(f"{n} voci annullate.")
                if c2.button("Azzera statistiche", key="stats_btn"):
                    n = api_post("/api/queue/reset-stats", token=token)["cancellate"]
                    st.success(f"{n} voci archiviate rimosse.")



# TAB 2 - Check-in e stato paziente (pubblico)

with tab2:
    st.subheader("Check-in (come da QR code)")

    clinica_id = st.text_input("ID clinica", value=st.query_params.get("clinic", ""), key="pub_clinica")
    if clinica_id.strip():
        try:
            info = api_get(f"/api/clinic/{clinica_id.strip()}/info")
            st.write(
                f"**{info['nome']}** | in attesa: {info['in_attesa']} | "
                f"medico {'presente' if info['medico_presente'] else 'non ancora arrivato'}"
            )
        except ApiError as e:
            st.error(e.message)
            info = None

        if info:
            c1, c2 = st.columns(2)
            tel = c1.text_input("Telefono", key="pub_tel")
            nome = c2.text_input("Nome (opzionale)", key="pub_nome")
            if st.button("Entra in coda", key="pub_checkin"):
                try:
                    v = api_post(f"/api/queue/checkin/{clinica_id.strip()}", {"telefono": tel.strip(), "nome": nome.strip() or None})
                    st.session_state["voce_id"] = v["id"]
                    st.success(f"Sei il numero {v['posizione']}. Attesa stimata: {v['attesa_stimata_minuti']} min.")
                except ApiError as e:
                    st.error(e.message)

    st.divider()
    st.subheader("Il mio turno")
    voce_id = st.text_input("ID ticket", value=st.session_state.get("voce_id", ""), key="pub_voce")
    if voce_id.strip():
        try:
            v = api_get(f"/api/queue/patient/{voce_id.strip()}")
            st.metric("Posizione", v["posizione"] or "-")
            st.write(
                f"Stato: **{STATI_LABEL.get(v['stato'], v['stato'])}** | "
                f"attesa stimata: {v['attesa_stimata_minuti']} min | {v['nome_clinica']}"
            )
            if v["stato"] in ("WAITING", "NOTIFIED") and st.button("Lascia la coda", key="pub_leave"):
                api_post(f"/api/queue/patient/{voce_id.strip()}/leave")
                st.rerun()
        except ApiError as e:
            st.error(e.message)



# TAB 3 - Agenda (PROTETTO)

with tab3:
    st.subheader("Agenda giornaliera (sezione riservata)")

    token = require_auth()
    if token:
        giorno = st.date_input("Giorno", value=date.today(), key="agenda_giorno")
        try:
            vista = api_get(f"/api/calendar/day/{giorno.isoformat()}", token=token)
            rie = vista["riepilogo"]
            st.caption(" | ".join(f"{k}: {n}" for k, n in rie.items()))
            if not vista["appuntamenti"]:
                st.info("Nessun appuntamento per questo giorno.")
            for a in vista["appuntamenti"]:
                cA, cB = st.columns([5, 1])
                cA.write(
                    f"- **{a['inizio']} - {a['fine']}** | "
                    f"{a['paziente']['nome']} | Dr. {a['medico']['nome']} | {a['stato']} | {a['motivo'] or '-'}"
                )
                if a["stato"] in ("SCHEDULED", "CONFIRMED") and cB.button("Check-in", key=f"chk_{a['id']}"):
                    try:
                        r = api_post(f"/api/appointments/{a['id']}/checkin", token=token)
                        st.success(f"In coda in posizione {r['posizione']}.")
                    except ApiError as e:
                        st.error(e.message)

            st.divider()
            st.write("Slot liberi:")
            slot = api_get("/api/calendar/slots", token=token, params={"data": giorno.isoformat()})
            if not slot["slot"]:
                st.info("Nessuno slot libero.")
            for sl in slot["slot"][:30]:
                st.write(f"- {sl['inizio']} - {sl['fine']} | {sl['nome_medico']}")
        except PermissionError as e:
            errore_sessione(e)
        except (ApiError, requests.RequestException) as e:
            st.error(f"Errore agenda: {e}")



# TAB 4 - Admin (PROTETTO, solo amministratori)

with tab4:
    st.subheader("Console amministratore")

    token = require_auth()
    if token:
        if not (st.session_state.get("clinica") or {}).get("admin"):
            st.info("Sezione riservata agli amministratori.")
        else:
            try:
                m = api_get("/api/admin/metrics", token=token)
                c1, c2, c3, c4 = st.columns(4)
                c1.metric("Cliniche attive", f"{m['cliniche_attive']}/{m['cliniche_totali']}")
                c2.metric("MRR (TND)", m["mrr_tnd"])
                c3.metric("Pazienti oggi", m["pazienti_oggi"])
                c4.metric("Check-in QR", f"{m['tasso_checkin_qr']}%")

                st.divider()
                cliniche = api_get("/api/admin/clinics", token=token)
                for c in cliniche:
                    st.write(
                        f"- **{c['nome']}** ({c['email']}) | {c['stato']} | "
                        f"oggi: {c['pazienti_oggi']} | attesa media: {c['attesa_media'] or '-'}"
                    )

                with st.expander("Registra pagamento"):
                    if cliniche:
                        c_sel = st.selectbox(
                            "Clinica", options=cliniche, format_func=lambda c: c["nome"], key="pag_clinica"
                        )
                        mese = st.date_input("Mese", value=date.today().replace(day=1), key="pag_mese")
                        rif = st.text_input("Riferimento (opzionale)", key="pag_rif")
                        if st.button("Registra", key="pag_btn"):
                            p = api_post(
                                f"/api/admin/clinics/{c_sel['id']}/payments",
                                {"mese": mese.isoformat(), "riferimento": rif.strip() or None},
                                token=token,
                            )
                            st.success(f"Pagamento registrato: {p['importo'] / 1000:.3f} TND ({p['mese'][:7]}).")
                        storico = api_get(f"/api/admin/clinics/{c_sel['id']}/payments", token=token)
                        for p in storico:
                            st.write(f"- {p['mese'][:7]} | {p['importo'] / 1000:.3f} TND | {p['metodo']} | {p['stato']}")
            except PermissionError as e:
                errore_sessione(e)
            except (ApiError, requests.RequestException) as e:
                st.error(f"Errore admin: {e}")
