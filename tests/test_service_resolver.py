from __future__ import annotations

import logging

import pytest

from msa_gateway.client.service_resolver import ResolvedEndpoint, resolve_endpoint


def test_default_endpoint_uses_service_name_and_port_8080() -> None:
    endpoint = resolve_endpoint("aloha", {})

    assert endpoint == ResolvedEndpoint("aloha", "http://aloha:8080/")
    assert endpoint.url_for("/api/aloha") == "http://aloha:8080/api/aloha"


def test_server_url_wins_and_is_used_verbatim() -> None:
    environ = {
        "HOLA_SERVER_URL": "http://stub:1234/base/",
        "HOLA_SERVICE_HOST": "ignored",
        "HOLA_SERVICE_PORT": "1",
    }

    endpoint = resolve_endpoint("hola", environ)

    assert endpoint.base_url == "http://stub:1234/base/"
    assert endpoint.url_for("api/hola") == "http://stub:1234/base/api/hola"


def test_host_and_port_build_url_without_trailing_slash() -> None:
    environ = {"BONJOUR_SERVICE_HOST": "10.0.0.5", "BONJOUR_SERVICE_PORT": "9090"}

    endpoint = resolve_endpoint("bonjour", environ)

    assert endpoint.base_url == "http://10.0.0.5:9090"
    assert not endpoint.port_missing
    assert endpoint.url_for("/api/bonjour") == "http://10.0.0.5:9090/api/bonjour"


def test_empty_server_url_falls_through_to_host() -> None:
    environ = {"OLA_SERVER_URL": "", "OLA_SERVICE_HOST": "ola-svc", "OLA_SERVICE_PORT": "80"}

    assert resolve_endpoint("ola", environ).base_url == "http://ola-svc:80"


def test_empty_host_falls_through_to_default() -> None:
    environ = {"OLA_SERVICE_HOST": "", "OLA_SERVICE_PORT": "9000"}

    assert resolve_endpoint("ola", environ).base_url == "http://ola:8080/"


@pytest.mark.parametrize("environ", [{"ALOHA_SERVICE_HOST": "aloha-svc"}, {"ALOHA_SERVICE_HOST": "aloha-svc", "ALOHA_SERVICE_PORT": ""}])
def test_host_without_port_is_flagged(environ: dict[str, str], caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="msa_gateway.client.service_resolver"):
        endpoint = resolve_endpoint("aloha", environ)

    assert endpoint.base_url == "http://aloha-svc:"
    assert endpoint.port_missing
    assert "ALOHA_SERVICE_PORT" in caplog.text


def test_env_names_use_uppercased_service_name() -> None:
    assert resolve_endpoint("hola", {"hola_SERVER_URL": "http://lower/"}).base_url == "http://hola:8080/"


def test_reads_process_environment_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ALOHA_SERVER_URL", "http://from-env/")

    assert resolve_endpoint("aloha").base_url == "http://from-env/"


def test_url_for_empty_path_returns_base() -> None:
    assert ResolvedEndpoint("aloha", "http://aloha:8080/").url_for("") == "http://aloha:8080/"
