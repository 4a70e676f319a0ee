import os
import socket
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from aiohttp import web
from aiohttp.test_utils import TestServer

from propbind.config import BindingOptions
from propbind.core.errors import SourceUnreachable
from propbind.loaders import EnvFetcher, FileFetcher, HttpFetcher, MergingSourceLoader, get_fetcher
from propbind.loaders.fetchers import parse_properties_text, uri_scheme


class MemoryFetcher:
    def __init__(self, sources: dict) -> None:
        self.sources = sources
        self.calls: list = []

    async def fetch(self, uri: str) -> dict:
        self.calls.append(uri)
        if uri not in self.sources:
            raise SourceUnreachable(uri, "not in memory")
        return dict(self.sources[uri])


class ParsePropertiesTests(unittest.TestCase):
    def test_key_value_lines(self) -> None:
        text = "# comment\nminimumAge=18\nname = Alice\nquoted=\"a b\"\nempty=\n"
        values = parse_properties_text(text, source="s", name="app.properties")
        self.assertEqual(values, {"minimumAge": "18", "name": "Alice", "quoted": "a b", "empty": ""})

    def test_no_interpolation(self) -> None:
        values = parse_properties_text("a=1\nb=${a}\n", source="s", name="app.properties")
        self.assertEqual(values["b"], "${a}")

    def test_flat_yaml(self) -> None:
        text = "minimumAge: 18\nenabled: true\nname: Alice\nnothing:\n"
        values = parse_properties_text(text, source="s", name="app.yaml")
        self.assertEqual(values, {"minimumAge": "18", "enabled": "true", "name": "Alice", "nothing": ""})

    def test_nested_yaml_is_rejected(self) -> None:
        with self.assertRaises(SourceUnreachable):
            parse_properties_text("server:\n  port: 80\n", source="s", name="app.yml")

    def test_invalid_yaml_is_rejected(self) -> None:
        with self.assertRaises(SourceUnreachable):
            parse_properties_text("a: [1, 2", source="s", name="app.yaml")


class FetcherSelectionTests(unittest.TestCase):
    def test_schemes(self) -> None:
        options = BindingOptions()
        self.assertIsInstance(get_fetcher("file:conf/app.properties", options), FileFetcher)
        self.assertIsInstance(get_fetcher("conf/app.properties", options), FileFetcher)
        self.assertIsInstance(get_fetcher("https://example.com/app.properties", options), HttpFetcher)
        self.assertIsInstance(get_fetcher("env:", options), EnvFetcher)

    def test_windows_drive_is_a_path(self) -> None:
        self.assertEqual(uri_scheme("C:\\conf\\app.properties"), "")

    def test_unknown_scheme(self) -> None:
        with self.assertRaises(SourceUnreachable):
            get_fetcher("ftp://example.com/app.properties", BindingOptions())

    def test_http_fetcher_uses_options(self) -> None:
        fetcher = get_fetcher("http://x/a", BindingOptions(http_timeout_seconds=2, http_max_retries=5))
        self.assertEqual(fetcher.timeout_seconds, 2)
        self.assertEqual(fetcher.max_retries, 5)


class FileFetcherTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_file_uri_and_bare_path(self) -> None:
        path = self.dir / "app.properties"
        path.write_text("a=1\n", encoding="utf-8")
        self.assertEqual(await FileFetcher().fetch(path.as_uri()), {"a": "1"})
        self.assertEqual(await FileFetcher().fetch(str(path)), {"a": "1"})

    async def test_missing_file(self) -> None:
        uri = (self.dir / "missing.properties").as_uri()
        with self.assertRaises(SourceUnreachable) as ctx:
            await FileFetcher().fetch(uri)
        self.assertEqual(ctx.exception.source, uri)


class EnvFetcherTests(unittest.IsolatedAsyncioTestCase):
    async def test_prefix_is_stripped(self) -> None:
        with mock.patch.dict(os.environ, {"MYAPP_PORT": "81", "MYAPP_": "ignored", "OTHER": "x"}):
            values = await EnvFetcher().fetch("env:MYAPP_")
        self.assertEqual(values, {"PORT": "81"})

    async def test_whole_environment(self) -> None:
        with mock.patch.dict(os.environ, {"PROPBIND_TEST_VAR": "1"}):
            values = await EnvFetcher().fetch("env:")
        self.assertEqual(values["PROPBIND_TEST_VAR"], "1")


class HttpFetcherTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        async def properties(request: web.Request) -> web.Response:
            return web.Response(text="minimumAge=18\n")

        async def yaml_doc(request: web.Request) -> web.Response:
            return web.Response(text="minimumAge: 21\n")

        app = web.Application()
        app.router.add_get("/app.properties", properties)
        app.router.add_get("/app.yaml", yaml_doc)
        self.server = TestServer(app)
        await self.server.start_server()

    async def asyncTearDown(self) -> None:
        await self.server.close()

    async def test_fetch_properties(self) -> None:
        values = await HttpFetcher().fetch(str(self.server.make_url("/app.properties")))
        self.assertEqual(values, {"minimumAge": "18"})

    async def test_format_follows_url_suffix(self) -> None:
        values = await HttpFetcher().fetch(str(self.server.make_url("/app.yaml")))
        self.assertEqual(values, {"minimumAge": "21"})

    async def test_error_status_is_unreachable(self) -> None:
        with self.assertRaises(SourceUnreachable) as ctx:
            await HttpFetcher(max_retries=1).fetch(str(self.server.make_url("/missing.properties")))
        self.assertIn("404", ctx.exception.reason)


class HttpRetryTests(unittest.IsolatedAsyncioTestCase):
    def _closed_port_url(self) -> str:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", 0))
            port = sock.getsockname()[1]
        return f"http://127.0.0.1:{port}/app.properties"

    async def test_connection_errors_are_retried_then_unreachable(self) -> None:
        url = self._closed_port_url()
        fetcher = HttpFetcher(timeout_seconds=5, max_retries=2, retry_backoff_seconds=0)

        with self.assertLogs("propbind.loaders.fetchers", level="WARNING") as logs:
            with self.assertRaises(SourceUnreachable) as ctx:
                await fetcher.fetch(url)

        self.assertEqual(ctx.exception.source, url)
        self.assertEqual(ctx.exception.reason, "download failed after retries: ClientConnectorError")
        retries = [line for line in logs.output if "Retrying source download" in line]
        self.assertEqual(len(retries), 1)
        self.assertIn("attempt=1/2", retries[0])

    async def test_backoff_doubles_per_attempt(self) -> None:
        url = self._closed_port_url()
        fetcher = HttpFetcher(timeout_seconds=5, max_retries=3, retry_backoff_seconds=0.001)

        with self.assertLogs("propbind.loaders.fetchers", level="WARNING") as logs:
            with self.assertRaises(SourceUnreachable):
                await fetcher.fetch(url)

        self.assertIn("delay_seconds=0.001 ", logs.output[0])
        self.assertIn("delay_seconds=0.002 ", logs.output[1])


class FailingFetcher:
    def __init__(self, error: BaseException) -> None:
        self.error = error

    async def fetch(self, uri: str) -> dict:
        raise self.error


class MergingSourceLoaderTests(unittest.IsolatedAsyncioTestCase):
    def _loader(self, sources: dict, **options) -> MergingSourceLoader:
        self.fetcher = MemoryFetcher(sources)
        return MergingSourceLoader(options=BindingOptions(**options), fetchers={"mem": self.fetcher})

    async def test_first_source_wins(self) -> None:
        loader = self._loader({"mem:a": {"x": "1"}, "mem:b": {"x": "2", "y": "2"}})
        snapshot = await loader.load(["mem:a", "mem:b"])
        self.assertEqual(dict(snapshot.values), {"x": "1", "y": "2"})

    async def test_overrides_win_over_sources(self) -> None:
        loader = self._loader({"mem:a": {"x": "1", "y": "1"}})
        snapshot = await loader.load(["mem:a"], {"x": 5, "flag": True, "none": None})
        self.assertEqual(dict(snapshot.values), {"x": "5", "y": "1", "flag": "true", "none": ""})

    async def test_fail_fast_by_default(self) -> None:
        loader = self._loader({"mem:b": {"y": "2"}})
        with self.assertRaises(SourceUnreachable) as ctx:
            await loader.load(["mem:a", "mem:b"])
        self.assertEqual(ctx.exception.source, "mem:a")
        self.assertEqual(self.fetcher.calls, ["mem:a"])

    async def test_skip_unreachable(self) -> None:
        loader = self._loader({"mem:b": {"y": "2"}}, on_unreachable="skip")
        with self.assertLogs("propbind.loaders.loader", level="WARNING"):
            snapshot = await loader.load(["mem:a", "mem:b"])
        self.assertEqual(dict(snapshot.values), {"y": "2"})

    async def test_first_load_type_uses_one_source(self) -> None:
        loader = self._loader({"mem:b": {"y": "2"}, "mem:c": {"z": "3"}}, load_type="first")
        snapshot = await loader.load(["mem:a", "mem:b", "mem:c"])
        self.assertEqual(dict(snapshot.values), {"y": "2"})
        self.assertEqual(self.fetcher.calls, ["mem:a", "mem:b"])

    async def test_first_load_type_fails_when_nothing_is_reachable(self) -> None:
        loader = self._loader({}, load_type="first")
        with self.assertRaises(SourceUnreachable):
            await loader.load(["mem:a", "mem:b"])

    async def test_first_load_type_with_skip_gives_overrides_only(self) -> None:
        loader = self._loader({}, load_type="first", on_unreachable="skip")
        snapshot = await loader.load(["mem:a"], {"k": "v"})
        self.assertEqual(dict(snapshot.values), {"k": "v"})

    async def test_snapshot_is_read_only_and_compares_by_value(self) -> None:
        loader = self._loader({"mem:a": {"x": "1"}})
        first = await loader.load(["mem:a"])
        second = await loader.load(["mem:a"])
        self.assertEqual(first, second)
        with self.assertRaises(TypeError):
            first.values["x"] = "2"  # type: ignore[index]

    async def test_unexpected_fetcher_error_is_unreachable(self) -> None:
        loader = MergingSourceLoader(fetchers={"mem": FailingFetcher(OSError("connection reset"))})
        with self.assertRaises(SourceUnreachable) as ctx:
            await loader.load(["mem:a"])
        self.assertEqual(ctx.exception.source, "mem:a")
        self.assertEqual(ctx.exception.reason, "OSError: connection reset")
        self.assertIsInstance(ctx.exception.__cause__, OSError)

    async def test_unexpected_fetcher_error_follows_skip_policy(self) -> None:
        loader = MergingSourceLoader(
            options=BindingOptions(on_unreachable="skip"),
            fetchers={"bad": FailingFetcher(ValueError("garbled")), "mem": MemoryFetcher({"mem:b": {"y": "2"}})},
        )
        with self.assertLogs("propbind.loaders.loader", level="WARNING"):
            snapshot = await loader.load(["bad:a", "mem:b"])
        self.assertEqual(dict(snapshot.values), {"y": "2"})


if __name__ == "__main__":
    unittest.main()
