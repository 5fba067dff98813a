"""
Backend Sala d'Attesa: coda pazienti in tempo reale per studi medici.

Struttura:
- db.py            : engine e sessioni SQLAlchemy
- models.py        : modelli ORM e enum
- posizioni.py     : calcolo posizioni/stati della coda
- services.py      : logica della coda (check-in, chiamata, uscita, riordino)
- agenda.py        : medici, pazienti, appuntamenti, calendario
- admin_service.py : console amministratore e pagamenti
- realtime.py      : stanze ed eventi verso dashboard e pazienti
- metriche.py      : metriche Prometheus (/metrics)
- api_main.py      : app FastAPI
- cli.py           : gestione coda da terminale
"""
