import httpx
import pytest

from hybrid_address_search.errors import ProviderFetchError
from hybrid_address_search.transport import HttpxTransport

URL = "https://openplzapi.org/de/Streets"


def make_transport(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxTransport(client=client), client


async def test_returns_decoded_json_and_forwards_params():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        seen["agent"] = request.headers.get("User-Agent")
        return httpx.Response(200, json=[{"name": "Marienplatz"}])

    transport, client = make_transport(handler)

    payload = await transport.get_json(URL, params={"postalCode": "80331", "page": 1}, headers={"User-Agent": "test/1"})

    assert payload == [{"name": "Marienplatz"}]
    assert seen["params"] == {"postalCode": "80331", "page": "1"}
    assert seen["agent"] == "test/1"
    await client.aclose()


async def test_http_error_status_is_mapped():
    transport, client = make_transport(lambda request: httpx.Response(500, text="upstream exploded"))

    with pytest.raises(ProviderFetchError) as excinfo:
        await transport.get_json(URL, params={"api_key": "secret"})

    err = excinfo.value
    assert err.http_status == 500
    assert err.error_label == "http_500"
    assert err.body_snippet == "upstream exploded"
    assert "secret" not in err.to_error("openplz").params_json
    await client.aclose()


async def test_invalid_json_is_mapped():
    transport, client = make_transport(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(ProviderFetchError) as excinfo:
        await transport.get_json(URL)

    assert excinfo.value.error_label == "invalid_json"
    assert excinfo.value.http_status == 200
    await client.aclose()


async def test_connection_error_is_mapped():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    transport, client = make_transport(handler)

    with pytest.raises(ProviderFetchError) as excinfo:
        await transport.get_json(URL)

    assert excinfo.value.error_label == "network"
    assert excinfo.value.http_status is None
    await client.aclose()


async def test_timeout_is_mapped():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    transport, client = make_transport(handler)

    with pytest.raises(ProviderFetchError) as excinfo:
        await transport.get_json(URL, timeout=0.1)

    assert excinfo.value.error_label == "timeout"
    await client.aclose()


async def test_borrowed_client_is_not_closed():
    transport, client = make_transport(lambda request: httpx.Response(200, json={}))

    await transport.aclose()

    assert client.is_closed is False
    await client.aclose()


async def test_owned_client_is_created_lazily_and_closed():
    async with HttpxTransport(default_timeout=2.0) as transport:
        client = transport._get_client()
        assert client is transport._get_client()

    assert client.is_closed is True
    assert transport._client is None
