import json
import unittest

import httpx

from bazaarkit.client import BazaarClient, BazaarError, BazaarHTTPError, DescriptorParseError


class TestRequest(unittest.TestCase):
    def test_default_headers_and_json_body(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"ok": True})

        client = BazaarClient(default_headers={"user-agent": "bazaarkit-test"}, transport=httpx.MockTransport(handler))
        try:
            resp = client.request(method="post", url="https://cloud.test/apis", json_body={"repo": "a/b"})
        finally:
            client.close()

        self.assertEqual(resp.json(), {"ok": True})
        self.assertEqual(seen[0].method, "POST")
        self.assertEqual(seen[0].headers["user-agent"], "bazaarkit-test")
        self.assertEqual(json.loads(seen[0].content), {"repo": "a/b"})

    def test_http_error_status(self) -> None:
        with BazaarClient(transport=httpx.MockTransport(lambda request: httpx.Response(503, text="busy"))) as client:
            with self.assertRaises(BazaarHTTPError) as ctx:
                client.request(method="GET", url="https://registry.test/x")

        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.body, "busy")

    def test_invalid_json(self) -> None:
        with BazaarClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))) as client:
            with self.assertRaises(DescriptorParseError):
                client.get_json("https://registry.test/x.json")


class TestDownload(unittest.TestCase):
    def test_follows_redirects_and_reports_chunks(self) -> None:
        payload = b"z" * (70 * 1024)

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/package/a/b@h1":
                return httpx.Response(302, headers={"location": "https://cdn.test/a-b.zip"})
            return httpx.Response(200, content=payload)

        chunks: list[tuple[int, int]] = []
        with BazaarClient(transport=httpx.MockTransport(handler)) as client:
            data = client.download("https://registry.test/package/a/b@h1", on_chunk=lambda d, t: chunks.append((d, t)))

        self.assertEqual(data, payload)
        self.assertEqual(chunks[-1], (len(payload), len(payload)))
        self.assertGreaterEqual(len(chunks), 2)

    def test_non_success_status(self) -> None:
        with BazaarClient(transport=httpx.MockTransport(lambda request: httpx.Response(404, text="gone"))) as client:
            with self.assertRaises(BazaarHTTPError) as ctx:
                client.download("https://registry.test/package/a/b@h1")

        self.assertEqual(ctx.exception.status_code, 404)

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with BazaarClient(transport=httpx.MockTransport(handler)) as client:
            with self.assertRaises(BazaarError):
                client.download("https://registry.test/package/a/b@h1")


class TestProbe(unittest.TestCase):
    def test_probe(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "down.test":
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(405)

        with BazaarClient(transport=httpx.MockTransport(handler)) as client:
            self.assertTrue(client.probe("https://registry.test"))
            self.assertFalse(client.probe("https://down.test"))


if __name__ == "__main__":
    unittest.main()
