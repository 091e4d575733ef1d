# SPDX-License-Identifier: AGPL-3.0-or-later
"""Flask application of linkhub, the HTTP endpoints of the icon and network
services.  Start a development server by::

  $ python -m linkhub.webapp
"""

from __future__ import annotations

import flask

from linkhub import get_setting, load_settings, logger
from linkhub import favicons, links
from linkhub.exceptions import ProbeTargetRejected
from linkhub.favicons import proxy
from linkhub.favicons.locality import client_network_info
from linkhub.favicons.probe import probe_target
from linkhub.network import get_network
from linkhub.webutils import api_response, client_ip, get_static_path

logger = logger.getChild("webapp")


async def network_probe():
    """Reachability of a host in the private network

    ::

        /api/network-probe?target=<...>

    ``target``:
      host name, ``host:port`` or URL, only private network targets are allowed

    A ``HEAD`` request is a cheap existence check of the endpoint.
    """
    target = flask.request.args.get("target", "").strip()
    if flask.request.method == "HEAD":
        return ("", 400) if not target else ("", 200)
    if not target:
        return api_response(error="target parameter is required", status=400)

    try:
        verdict = await probe_target(
            target,
            get_network(),
            timeout=float(get_setting("network_probe.timeout", 3.0)),
            enabled=bool(get_setting("network_probe.enabled", True)),
        )
    except ProbeTargetRejected as exc:
        logger.info("rejected probe target: %s", exc.target)
        return api_response(error="invalid target, only local network targets are allowed", status=403)

    return api_response(
        data={
            "target": target,
            "status": verdict.status.value,
            "isReachable": verdict.status.value == "reachable",
            "statusCode": verdict.status_code,
            "checkedAt": verdict.checked_at.isoformat(),
            "maxAge": verdict.max_age,
        }
    )


def network_test():
    """Client network information, see
    :py:obj:`linkhub.favicons.locality.classify_client_network`."""
    if flask.request.method == "HEAD":
        return "", 200
    return api_response(data=client_network_info(client_ip(flask.request)))


def create_app(settings_path=None) -> flask.Flask:
    """Build the Flask application, ``settings_path`` is an optional settings
    file replacing the settings loaded at import time."""

    if settings_path is not None:
        load_settings(settings_path)

    app = flask.Flask(__name__, static_folder=str(get_static_path()), static_url_path="/static")
    app.secret_key = get_setting("server.secret_key")

    favicons.init()
    links.init(get_setting("links.db_url"))

    app.add_url_rule("/api/icon", "icon_get", proxy.icon_get, methods=["GET"])
    app.add_url_rule("/api/icon", "icon_post", proxy.icon_post, methods=["POST"])
    app.add_url_rule("/api/local-icon", "local_icon", proxy.local_icon, methods=["POST"])
    app.add_url_rule("/api/proxy-icon", "favicon_proxy", proxy.favicon_proxy, methods=["GET"])
    app.add_url_rule("/api/default-icon", "default_icon", proxy.default_icon, methods=["GET"])
    app.add_url_rule("/api/network-probe", "network_probe", network_probe, methods=["GET", "HEAD"])
    app.add_url_rule("/api/network-test", "network_test", network_test, methods=["GET", "HEAD"])

    @app.errorhandler(500)
    def internal_error(error):  # pylint: disable=unused-argument
        return api_response(error="internal server error", status=500)

    if get_setting("server.secret_key") == "ultrasecretkey":
        logger.warning("server.secret_key is not changed, the proxy URLs can be forged")
    return app


def run():
    app = create_app()
    app.run(
        host=get_setting("server.bind_address", "127.0.0.1"),
        port=int(get_setting("server.port", 8888)),
        debug=bool(get_setting("general.debug", False)),
    )


if __name__ == "__main__":
    run()
