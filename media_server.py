"""
ReelHost
--------
HTTPS media file server. Shares a directory of audio and video files
behind HTTP Basic Authentication and publishes them as an M3U playlist
that media players can open directly.
"""

import logging
import os
import socket
import ssl
import sys
from typing import Any, Optional, Tuple

import click
from flask import Flask, Response, abort, redirect, request, send_from_directory
from werkzeug.serving import BaseWSGIServer, WSGIRequestHandler, make_server

from auth import requires_basic_auth
from certificates import (
    DEFAULT_CERT_HOSTS,
    CertificateManager,
    CertificateMissingError,
)
from config import (
    ServerConfig,
    create_sample_env_file,
    load_config,
    resolve_log_settings,
)
from logging_config import log_listen_addresses, setup_logging
from playlist import PLAYLIST_MIMETYPE, generate_m3u, playlist_base_url

# Bounds slow or idle authentication attempts
READ_TIMEOUT = 5
# Large media transfers
WRITE_TIMEOUT = 10 * 60
# Keep-alive window between requests on one connection
IDLE_TIMEOUT = 2 * 60

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    # Playlist URLs carry credentials
    "Referrer-Policy": "no-referrer",
}

logger = logging.getLogger(__name__)


def build_ssl_context(cert_path: str, key_path: str) -> ssl.SSLContext:
    """Server-side TLS context for the certificate pair"""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.load_cert_chain(certfile=cert_path, keyfile=key_path)
    return context


class MediaRequestHandler(WSGIRequestHandler):
    """
    Per-connection handler that performs the TLS handshake in its own
    worker thread and applies separate read, write and idle timeouts.

    The listening socket is left unwrapped so a slow handshake cannot
    stall the accept loop.
    """

    protocol_version = "HTTP/1.1"
    timeout = READ_TIMEOUT

    def setup(self) -> None:
        self.requests_handled = 0
        self.request = self.server.ssl_context.wrap_socket(
            self.request, server_side=True, do_handshake_on_connect=False
        )
        super().setup()

    def handle(self) -> None:
        try:
            self.connection.do_handshake()
        except (ssl.SSLError, OSError) as e:
            self.log_error("TLS handshake failed: %s", e)
            return
        super().handle()

    def handle_one_request(self) -> None:
        if self.requests_handled:
            self.connection.settimeout(IDLE_TIMEOUT)
            if not self.rfile.peek(1):
                self.close_connection = True
                return
        self.connection.settimeout(READ_TIMEOUT)
        super().handle_one_request()

    def run_wsgi(self) -> None:
        self.requests_handled += 1
        self.connection.settimeout(WRITE_TIMEOUT)
        super().run_wsgi()

    def finish(self) -> None:
        # The server only shuts down the raw socket, which wrap_socket detached
        try:
            super().finish()
        finally:
            try:
                self.connection.shutdown(socket.SHUT_WR)
            except OSError:
                pass
            self.connection.close()


class MediaServer:
    """Flask application and TLS listener for one resolved configuration"""

    def __init__(
        self, config: ServerConfig, certificates: Optional[CertificateManager] = None
    ):
        self.config = config
        self.certificates = certificates or CertificateManager()
        self.app = self._create_app()
        self._register_routes()
        self._register_error_handlers()

    def _create_app(self) -> Flask:
        """Create and configure Flask application"""
        # No static folder: every route must go through authentication
        return Flask(__name__, static_folder=None)

    def _register_routes(self) -> None:
        """Register the three authenticated routes"""
        auth = requires_basic_auth(self.config.username, self.config.password)

        @self.app.after_request
        def after_request(response: Response) -> Response:
            for header, value in SECURITY_HEADERS.items():
                response.headers[header] = value
            return response

        @self.app.route(
            "/files/<path:file_path>", methods=["GET"], provide_automatic_options=False
        )
        @auth
        def files(file_path: str) -> Response:
            """Serve a file from the media directory with range support"""
            return self._handle_file_request(file_path)

        @self.app.route(
            "/playlist.m3u8", methods=["GET"], provide_automatic_options=False
        )
        @auth
        def playlist() -> Response:
            """M3U playlist of every indexed media file"""
            base_url = playlist_base_url(
                self.config.username, self.config.password, request.host
            )
            return Response(
                generate_m3u(base_url, self.config.media_files),
                mimetype=PLAYLIST_MIMETYPE,
            )

        @self.app.route("/", methods=["GET"], provide_automatic_options=False)
        @auth
        def index() -> Response:
            return redirect("/playlist.m3u8", code=303)

    def _register_error_handlers(self) -> None:
        """Register plain-text error handlers"""

        @self.app.errorhandler(404)
        def not_found(_error: Any) -> Tuple[str, int]:
            return "Not Found\n", 404

        @self.app.errorhandler(405)
        def method_not_allowed(_error: Any) -> Tuple[str, int]:
            return "Method Not Allowed\n", 405

        @self.app.errorhandler(500)
        def internal_error(error: Any) -> Tuple[str, int]:
            self.app.logger.error(f"Server error: {str(error)}", exc_info=True)
            return "Internal Server Error\n", 500

    def resolve_file(self, file_path: str) -> Optional[str]:
        """
        Real path of a requested file, or None if it resolves outside the
        media directory (through ".." segments or symbolic links) or is not
        a regular file.
        """
        root = os.path.realpath(self.config.root_path)
        try:
            full_path = os.path.realpath(os.path.join(root, file_path))
        except ValueError:
            # Embedded null byte
            return None
        if os.path.commonpath([root, full_path]) != root:
            logger.warning(f"Rejected path outside media directory: {file_path}")
            return None
        if not os.path.isfile(full_path):
            return None
        return full_path

    def _handle_file_request(self, file_path: str) -> Response:
        full_path = self.resolve_file(file_path)
        if full_path is None:
            abort(404)
        root = os.path.realpath(self.config.root_path)
        return send_from_directory(
            root, os.path.relpath(full_path, root), conditional=True
        )

    def create_listener(self) -> BaseWSGIServer:
        """Bind the threaded TLS listener without starting it"""
        server = make_server(
            self.config.host,
            self.config.port,
            self.app,
            threaded=True,
            request_handler=MediaRequestHandler,
        )
        # TLS is applied per connection by MediaRequestHandler
        server.ssl_context = build_ssl_context(*self.certificates.paths)
        return server

    def run(self) -> None:
        """Start serving until interrupted"""
        listener = self.create_listener()
        host = self.config.host
        display_host = f"[{host}]" if ":" in host else host

        logger.info(f"Starting server with configuration: {self.config.to_dict()}")

        print(f"Username: {self.config.username}")
        print(f"Password: {self.config.password}\n")
        log_listen_addresses()
        print(f"Now listening on {display_host}:{self.config.port}")
        print(
            "Access the media playlist locally at "
            f"https://{self.config.username}:{self.config.password}"
            f"@localhost:{self.config.port}/"
        )

        try:
            listener.serve_forever()
        except KeyboardInterrupt:
            logger.info("Server shutdown requested by user")
            print("\nServer stopped by user")
        finally:
            listener.server_close()


def stdin_is_interactive() -> bool:
    return sys.stdin.isatty()


def _start_server(
    path: Optional[str],
    host: Optional[str],
    port: Optional[str],
    user: Optional[str],
    password: Optional[str],
) -> None:
    certificates = CertificateManager()
    try:
        config = load_config(user, password, host, port, path, certificates)
    except CertificateMissingError as e:
        if not stdin_is_interactive() or not click.confirm(
            f"{e}\nGenerate a self-signed certificate for {DEFAULT_CERT_HOSTS} now?"
        ):
            raise
        certificates.generate(DEFAULT_CERT_HOSTS)
        config = load_config(user, password, host, port, path, certificates)

    MediaServer(config, certificates).run()


@click.group(invoke_without_command=True)
@click.option("--path", help="Path to directory to serve (required)")
@click.option("--host", help="Host (interface) address to listen on [default: ::]")
@click.option("--port", help="Port to listen on [default: 443]")
@click.option(
    "--user",
    help="Username for basic auth. Also can be set with the REELHOST_USER "
    "environment variable. Defaults to \"user\".",
)
@click.option(
    "--pass",
    "password",
    help="Password for basic auth. Also can be set with the REELHOST_PASS "
    "environment variable. Generates a random password by default.",
)
@click.option("--log-level", help="Logging level (overrides REELHOST_LOG_LEVEL)")
@click.option(
    "--generate-config", is_flag=True, help="Generate sample configuration file"
)
@click.pass_context
def main(
    ctx: click.Context,
    path: Optional[str],
    host: Optional[str],
    port: Optional[str],
    user: Optional[str],
    password: Optional[str],
    log_level: Optional[str],
    generate_config: bool,
) -> None:
    """A simple HTTPS file server for sharing media files.

    Generate a self-signed TLS certificate with gen-cert, then start the
    server with `reelhost --path DIR`.
    """
    if generate_config:
        create_sample_env_file()
        return

    try:
        setup_logging(resolve_log_settings(log_level))
    except ValueError as e:
        print(f"Configuration Error: {e}")
        sys.exit(1)

    if ctx.invoked_subcommand is not None:
        return

    try:
        _start_server(path, host, port, user, password)
    except ValueError as e:
        print(f"Configuration Error: {e}")
        sys.exit(1)
    except CertificateMissingError as e:
        print(f"Certificate Error: {e}")
        sys.exit(1)
    except (RuntimeError, OSError) as e:
        print(f"Server Error: {e}")
        sys.exit(1)


@main.command("gen-cert")
@click.option(
    "--hosts",
    default=DEFAULT_CERT_HOSTS,
    show_default=True,
    help="Comma separated list of hosts to add to TLS certificate.",
)
def gen_cert(hosts: str) -> None:
    """Generate a self-signed TLS certificate (cert.pem, key.pem)"""
    try:
        CertificateManager().generate(hosts)
    except (OSError, ValueError) as e:
        print(f"Certificate Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
