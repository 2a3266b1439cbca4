import unittest

import httpx

from metafetch.environment import Environment
from metafetch.http.client import httpx_get, use_httpx_fetch, use_httpx_post
from metafetch.http.exceptions import ClientError, NetworkError, RequestTimeoutError, ServerError
from metafetch.http.httpx_transport import HttpxTransport
from metafetch.http.support import Blob, FormData
from metafetch.http.transport import TransportRequest


class HttpxTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.env = Environment()
        self.requests = []

    def transport(self, handler):
        def recording_handler(request):
            self.requests.append(request)
            return handler(request)
        return HttpxTransport(transport=httpx.MockTransport(recording_handler))

    def request(self, url, handler, **options):
        options.setdefault("immediate", False)
        return use_httpx_fetch(url, transport=self.transport(handler), environment=self.env, **options)


class TestHttpxRequests(HttpxTestCase):
    async def test_json_get(self):
        req = self.request(
            "https://api.test/users/1",
            lambda request: httpx.Response(200, json={"id": 1}),
            headers={"X-Client": "tests"},
        )

        result = await req.execute()

        self.assertEqual(result, ({"id": 1}, None))
        self.assertEqual(req.status_code.peek(), 200)
        self.assertEqual(self.requests[0].method, "GET")
        self.assertEqual(self.requests[0].headers["x-client"], "tests")

    async def test_base_url(self):
        req = self.request("/users", lambda request: httpx.Response(200, json=[]), base_url="https://api.test/v1/")

        await req.execute()

        self.assertEqual(str(self.requests[0].url), "https://api.test/v1/users")

    async def test_text_response(self):
        req = self.request("https://api.test/ping", lambda request: httpx.Response(200, text="pong"))

        result = await req.text().execute()

        self.assertEqual(result.data, "pong")

    async def test_document_response(self):
        html = "<html><head><title>Report</title></head><body><td>42</td></body></html>"
        req = self.request("https://api.test/report", lambda request: httpx.Response(200, html=html))

        result = await req.document().execute()

        self.assertEqual(result.data.findtext(".//title"), "Report")
        self.assertEqual(result.data.findtext(".//td"), "42")

    async def test_form_post_is_multipart(self):
        def handler(request):
            self.assertTrue(request.headers["content-type"].startswith("multipart/form-data; boundary="))
            self.assertIn(b'name="name"', request.content)
            self.assertIn(b"Ada", request.content)
            self.assertIn(b'filename="cv.txt"', request.content)
            return httpx.Response(
                201,
                content=b"saved=1&id=9",
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )

        req = self.request("https://api.test/people", handler)
        payload = {"name": "Ada", "cv": Blob(b"maths", "text/plain", "cv.txt")}

        result = await req.post(payload).form().execute()

        self.assertIsNone(result.error)
        self.assertIsInstance(result.data, FormData)
        self.assertEqual(result.data.to_dict(), {"saved": "1", "id": "9"})
        self.assertEqual(req.status_code.peek(), 201)

    async def test_json_post(self):
        def handler(request):
            self.assertEqual(request.headers["content-type"], "application/json")
            self.assertEqual(request.content, b'{"name": "Ada"}')
            return httpx.Response(201, json={"id": 9})

        req = use_httpx_post("https://api.test/people", {"name": "Ada"}, transport=self.transport(handler),
                             environment=self.env, immediate=False)

        result = await req.execute()

        self.assertEqual(result.data, {"id": 9})


class TestHttpxFailures(HttpxTestCase):
    async def test_client_error_carries_response(self):
        req = self.request(
            "https://api.test/missing",
            lambda request: httpx.Response(404, json={"detail": "not here"}),
            retry=True,
        )

        result = await req.execute()

        self.assertIsInstance(result.error, ClientError)
        self.assertEqual(result.error.status, 404)
        self.assertEqual(result.error.data, {"detail": "not here"})
        self.assertEqual(len(self.requests), 1)

    async def test_server_error_is_retried(self):
        responses = [httpx.Response(503, text="busy"), httpx.Response(200, json={"ok": True})]
        req = self.request("https://api.test/flaky", lambda request: responses.pop(0), retry=True, retry_count=2)

        result = await req.execute()

        self.assertEqual(result, ({"ok": True}, None))
        self.assertEqual(len(self.requests), 2)

    async def test_server_error_body_is_text_when_not_json(self):
        req = self.request("https://api.test/flaky", lambda request: httpx.Response(500, text="Internal oops"))

        result = await req.execute()

        self.assertIsInstance(result.error, ServerError)
        self.assertEqual(result.error.data, "Internal oops")

    async def test_connection_failure_is_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        req = self.request("https://api.test/down", handler, retry=True, retry_count=1)

        result = await req.execute()

        self.assertIsInstance(result.error, NetworkError)
        self.assertIsInstance(result.error.original_error, httpx.ConnectError)
        self.assertEqual(len(self.requests), 2)

    async def test_transport_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        req = self.request("https://api.test/slow", handler)

        result = await req.execute()

        self.assertIsInstance(result.error, RequestTimeoutError)
        self.assertEqual(result.error.code, "ECONNABORTED")

    async def test_no_client_timeout_without_timeout_option(self):
        req = self.request("https://api.test/users", lambda request: httpx.Response(200, json=[]))

        await req.execute()

        self.assertEqual(self.requests[0].extensions["timeout"], {
            "connect": None,
            "read": None,
            "write": None,
            "pool": None,
        })


class TestHttpxTransportDirect(unittest.IsolatedAsyncioTestCase):
    async def test_shared_client(self):
        mock = httpx.MockTransport(lambda request: httpx.Response(200, content=b"\x01\x02"))
        async with httpx.AsyncClient(transport=mock) as client:
            transport = HttpxTransport(client)
            response = await transport.send(TransportRequest("https://api.test/bin", response_type="arraybuffer"))

        self.assertTrue(response.ok)
        self.assertEqual(response.data, b"\x01\x02")

    async def test_httpx_get_helper(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"q": request.url.params["q"]})

        result = await httpx_get(
            "https://api.test/search", {"q": "ada"},
            transport=HttpxTransport(transport=httpx.MockTransport(handler)),
            environment=Environment(),
        )

        self.assertEqual(result, ({"q": "ada"}, None))
        self.assertEqual(str(seen[0].url), "https://api.test/search?q=ada")


if __name__ == '__main__':
    unittest.main()
