"""Main Flask app - wires the supervisor, tunnel managers and JSON API together."""

import logging
import os

from flask import Flask

import config
from api import api_bp
from services.HealthService import HealthMonitor
from services.SupervisorService import ServerSupervisor
from tunnel.manager import get_tunnel_manager

VERSION = "0.1.0"


def configure_logging(level=None):
    logging.basicConfig(
        level=level or config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app(supervisor=None, tunnel_manager_factory=None, start_health_monitor=False):
    """
    Build the Flask application.

    Args:
        supervisor: ServerSupervisor to expose (a new one is created if omitted)
        tunnel_manager_factory: provider name -> TunnelManager (defaults to the per-provider singletons)
        start_health_monitor: Start the background process watcher
    """
    configure_logging()

    app = Flask(__name__)

    factory = tunnel_manager_factory or get_tunnel_manager
    supervisor = supervisor or ServerSupervisor(tunnel_manager_factory=factory)

    app.extensions['blockhost.tunnel_manager_factory'] = factory
    app.extensions['blockhost.supervisor'] = supervisor

    monitor = HealthMonitor(supervisor)
    app.extensions['blockhost.health_monitor'] = monitor
    if start_health_monitor:
        monitor.start()

    app.register_blueprint(api_bp, url_prefix='/api')

    @app.route('/health')
    def health():
        return {'status': 'ok', 'version': VERSION}

    app.logger.info(f"BlockHost {VERSION} using data directory {config.DATA_DIR}")
    return app


if __name__ == '__main__':
    application = create_app(start_health_monitor=True)
    application.run(
        host=os.environ.get('BLOCKHOST_HOST', '127.0.0.1'),
        port=int(os.environ.get('BLOCKHOST_PORT', '5000')),
    )
