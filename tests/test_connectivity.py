"""Tests for the connectivity oracles."""

from __future__ import annotations

import httpx

from src.leadsync.sync.connectivity import HttpConnectivityProbe, StaticConnectivity


async def test_static_connectivity_flag():
    oracle = StaticConnectivity(online=False)
    assert await oracle.is_online() is False

    oracle.set_online(True)
    assert await oracle.is_online() is True


class TestHttpConnectivityProbe:
    @staticmethod
    def _probe(handler, cache_seconds: float = 5.0) -> HttpConnectivityProbe:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return HttpConnectivityProbe("http://crm.test/", cache_seconds=cache_seconds, client=client)

    async def test_any_response_means_online(self):
        probe = self._probe(lambda request: httpx.Response(503))

        assert await probe.is_online() is True

    async def test_transport_error_means_offline(self):
        def handler(request):
            raise httpx.ConnectError("no route to host")

        probe = self._probe(handler)

        assert await probe.is_online() is False

    async def test_result_is_cached(self):
        seen = []

        def handler(request):
            seen.append(request.method)
            return httpx.Response(200)

        probe = self._probe(handler, cache_seconds=60)

        await probe.is_online()
        await probe.is_online()

        assert seen == ["HEAD"]

    async def test_cache_expires(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200)

        probe = self._probe(handler, cache_seconds=5)

        await probe.is_online()
        probe._last_checked -= 6
        await probe.is_online()

        assert len(seen) == 2
