"""Run the SaaS manager API under uvicorn.

The daily renewal / audit / reminder scheduler starts inside the app process,
so one instance serves with a single worker. Extra instances should set
SCHEDULER_ENABLED=false and leave the daily run to the first one (or to cron
via the saasdb.jobs modules).
"""

import logging
import os
from typing import Dict

import uvicorn

_TLS_ENV = {
    "ssl_certfile": "SSL_CERTFILE",
    "ssl_keyfile": "SSL_KEYFILE",
    "ssl_ca_certs": "SSL_CA_CERTS",
    "ssl_keyfile_password": "SSL_KEYFILE_PASSWORD",
}


def _tls_options() -> Dict[str, str]:
    return {option: os.environ[env] for option, env in _TLS_ENV.items() if os.getenv(env)}


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def main() -> None:
    log_level = os.getenv("LOG_LEVEL", "info")
    _configure_logging(log_level)

    uvicorn.run(
        "saasdb.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "false").lower() in {"1", "true", "yes", "on"},
        log_level=log_level,
        proxy_headers=True,
        forwarded_allow_ips=os.getenv("FORWARDED_ALLOW_IPS", "*"),
        **_tls_options(),
    )


if __name__ == "__main__":
    main()
