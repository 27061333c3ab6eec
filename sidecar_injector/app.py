"""
Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
SPDX-License-Identifier: MIT-0
"""
import logging
import os
import sys

from flask import Flask

from .config import Settings, load
from .routes import create_routes

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(message)s",
)
log = logging.getLogger("sidecar-injector")


def create_app(settings: Settings) -> Flask:
    app = Flask(__name__)
    app.register_blueprint(create_routes(settings))
    return app


# Module-level app for WSGI servers such as gunicorn; configured from env only
settings = load()
app = create_app(settings)


def main(argv=None) -> int:
    settings = load(sys.argv[1:] if argv is None else argv)
    logging.getLogger().setLevel(settings.log_level)
    injector = settings.injector
    log.info(
        "Starting sidecar injector: port=%s kubelet_port=%s insecure_tls=%s ignored_namespaces=%s",
        settings.port,
        injector.kubelet_port,
        injector.kubelet_insecure_tls,
        ",".join(sorted(injector.ignored_namespaces)),
    )
    if not injector.agent_api_key:
        log.warning("No agent API key configured; injected agents will fail to register")
    create_app(settings).run(
        host="0.0.0.0",
        port=settings.port,
        ssl_context=(settings.tls_cert_file, settings.tls_key_file),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
