from __future__ import annotations
from flask import Flask, request, jsonify, Response
from werkzeug.exceptions import MethodNotAllowed

import structlog

from query_exporter.api.coordinator import ExportCoordinator
from query_exporter.config.env import load_settings
from query_exporter.config.logger_config import configure_logging
from query_exporter.exports.errors import BadMethod, ExportError

configure_logging()
log = structlog.get_logger(__name__)

app = Flask(__name__)

# Built once at startup; tests swap in their own coordinator via app.config.
app.config['EXPORT_COORDINATOR'] = ExportCoordinator(load_settings())

# These verbs reach the coordinator so it can answer BadMethod itself;
# any other verb gets the same response from the 405 handler.
_ALL_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS']


def _get_coordinator() -> ExportCoordinator:
    return app.config['EXPORT_COORDINATOR']


@app.errorhandler(ExportError)
def _export_error(err: ExportError):
    return Response(
        f"{err.message}\n",
        status=err.status,
        mimetype='text/plain',
        headers={'X-Export-Error': err.kind},
    )


@app.errorhandler(MethodNotAllowed)
def _method_not_allowed(_err: MethodNotAllowed):
    return _export_error(BadMethod("Invalid request method"))


@app.route('/export', methods=_ALL_METHODS, provide_automatic_options=False)
def export_data():
    result = _get_coordinator().handle_export(request.method, request.get_data())
    return jsonify(result.to_json())


@app.get('/health')
def health():
    return jsonify({'status': 'ok'})


def main() -> None:
    settings = _get_coordinator().settings
    log.info("exporter_listening", host=settings.host, port=settings.port)
    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == '__main__':
    main()
