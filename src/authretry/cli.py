"""Command-line interface for sending requests through the retry dispatcher."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import requests
import typer

try:  # pragma: no cover - exercised in runtime environments
    from rich import box
    from rich.console import Console
    from rich.table import Table
except ImportError as exc:  # pragma: no cover - optional dependency guard
    raise RuntimeError(
        "The CLI requires Rich for table rendering. Install the CLI extras via "
        "'pip install authretry-http[cli]' to enable this command."
    ) from exc

from .auth import BasicCredentials, BearerCredentials, Credentials
from .cancellation import CancellationToken
from .config import ENV_PREFIX, DispatcherConfig
from .dispatcher import create_dispatcher
from .exceptions import AuthResolutionFailed, Cancelled, ConfigurationError
from .http import classify_exception, is_cannot_reach_internet_error
from .providers import CredentialProvider, StaticCredentialProvider

app = typer.Typer(help="Send HTTP requests that answer proxy and server auth challenges.", no_args_is_help=True)

console = Console(force_terminal=False, color_system=None)


@app.callback()
def main() -> None:
    """authretry command group."""


def _parse_headers(raw_headers: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for raw in raw_headers:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Header must look like 'Name: value', got {raw!r}.")
        headers[name.strip()] = value.strip()
    return headers


def _server_credentials(
    username: str | None, password: str | None, token: str | None
) -> Credentials | None:
    if token and (username or password):
        raise typer.BadParameter("Use either --token or --username/--password, not both.")
    if token:
        return BearerCredentials(token=token)
    if username or password:
        if not username or not password:
            raise typer.BadParameter("--username and --password must be given together.")
        return BasicCredentials(username=username, password=password)
    return None


def _build_provider(
    *,
    username: str | None,
    password: str | None,
    token: str | None,
    proxy_username: str | None,
    proxy_password: str | None,
    realm: str | None,
) -> CredentialProvider | None:
    server = _server_credentials(username, password, token)
    proxy: Credentials | None = None
    if proxy_username or proxy_password:
        if not proxy_username or not proxy_password:
            raise typer.BadParameter("--proxy-username and --proxy-password must be given together.")
        proxy = BasicCredentials(username=proxy_username, password=proxy_password)
    if server is None and proxy is None:
        return None
    if realm and server is not None:
        return StaticCredentialProvider(proxy=proxy, realms={realm: server})
    return StaticCredentialProvider(server=server, proxy=proxy)


def _build_config(verify_ssl: bool, cert_path: Path | None, timeout: float | None) -> DispatcherConfig:
    try:
        config = DispatcherConfig.from_env()
    except ConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc
    if cert_path:
        expanded_cert = cert_path.expanduser()
        if not expanded_cert.exists():
            raise typer.BadParameter("Certificate file not found for --cert option.")
        if not verify_ssl:
            raise typer.BadParameter("Cannot combine --cert with --no-verify.")
        config.verify_ssl = str(expanded_cert)
    else:
        config.verify_ssl = verify_ssl
    if timeout is not None:
        config.timeout = timeout
    return config


def _render_headers(response: requests.Response) -> None:
    table = Table(
        title="Response headers",
        box=box.SIMPLE,
        show_lines=False,
        header_style="bold cyan",
    )
    table.add_column("Header")
    table.add_column("Value")
    for name, value in sorted(response.headers.items()):
        table.add_row(name, value)
    console.print(table)


def _present_response(response: requests.Response, *, show_headers: bool, json_output: bool) -> None:
    if json_output:
        payload: dict[str, Any] = {
            "status": response.status_code,
            "reason": response.reason,
            "url": response.url,
            "headers": dict(response.headers),
            "body": response.text,
        }
        typer.echo(json.dumps(payload, indent=2))
        return
    typer.echo(f"HTTP {response.status_code} {response.reason or ''}".rstrip())
    if show_headers:
        _render_headers(response)
    if response.text:
        typer.echo(response.text)


def _fail(message: str, *, code: int) -> None:
    typer.secho(message, err=True, fg=typer.colors.RED)
    raise typer.Exit(code=code)


@app.command("fetch")
def fetch(
    url: str = typer.Argument(..., help="Target URL."),
    method: str = typer.Option("GET", "--method", "-X", help="HTTP method.", show_default=True),
    header: list[str] = typer.Option([], "--header", "-H", help="Extra header in 'Name: value' form."),
    data: str | None = typer.Option(None, "--data", "-d", help="Request body."),
    username: str | None = typer.Option(
        None, "--username", "-u", envvar=f"{ENV_PREFIX}USERNAME", help="Server username for basic auth."
    ),
    password: str | None = typer.Option(
        None,
        "--password",
        "-p",
        envvar=f"{ENV_PREFIX}PASSWORD",
        help="Server password for basic auth.",
        hide_input=True,
    ),
    token: str | None = typer.Option(
        None, "--token", envvar=f"{ENV_PREFIX}TOKEN", help="Bearer token for the server."
    ),
    proxy_username: str | None = typer.Option(
        None, "--proxy-username", envvar=f"{ENV_PREFIX}PROXY_USERNAME", help="Proxy username."
    ),
    proxy_password: str | None = typer.Option(
        None, "--proxy-password", envvar=f"{ENV_PREFIX}PROXY_PASSWORD", help="Proxy password."
    ),
    realm: str | None = typer.Option(
        None, "--realm", help="Only answer server challenges for this realm."
    ),
    verify_ssl: bool = typer.Option(
        True,
        "--verify/--no-verify",
        envvar=f"{ENV_PREFIX}VERIFY_SSL",
        help="Enable or disable TLS certificate verification.",
        show_default=True,
    ),
    cert_path: Path | None = typer.Option(
        None, "--cert", envvar=f"{ENV_PREFIX}CA_CERT", help="Path to a custom CA bundle."
    ),
    timeout: float | None = typer.Option(None, help="Request timeout (seconds)."),
    show_headers: bool = typer.Option(False, "--show-headers", "-i", help="Render response headers."),
    json_output: bool = typer.Option(False, "--json", "-j", help="Print the response as JSON."),
) -> None:
    """Send one request, answering authentication challenges as needed."""

    provider = _build_provider(
        username=username,
        password=password,
        token=token,
        proxy_username=proxy_username,
        proxy_password=proxy_password,
        realm=realm,
    )
    config = _build_config(verify_ssl, cert_path, timeout)
    headers = _parse_headers(header)
    cancellation = CancellationToken()

    with create_dispatcher(config, provider) as dispatcher:
        try:
            response = dispatcher.request(
                method, url, headers=headers, data=data, token=cancellation
            )
        except KeyboardInterrupt:
            cancellation.cancel()
            _fail("Interrupted.", code=130)
            return
        except AuthResolutionFailed as exc:
            _fail(f"Authentication failed: {exc}", code=1)
            return
        except Cancelled as exc:
            _fail(f"Request cancelled: {exc}", code=1)
            return
        except requests.RequestException as exc:
            reason = str(exc).strip() or exc.__class__.__name__
            message = f"Request failed ({classify_exception(exc).value}): {reason}"
            if is_cannot_reach_internet_error(exc):
                message += "\nCheck your network connection and proxy settings."
            _fail(message, code=2)
            return

        _present_response(response, show_headers=show_headers, json_output=json_output)
