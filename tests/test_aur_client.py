"""Tests for the AUR RPC client."""

import asyncio

import aiohttp
import pytest

from archsync.aur_client import (
    AurClient, backoff_delay_ms, partition_batches, throttle_delay_ms,
)
from archsync.exceptions import NetworkError, SerializationError
from archsync.models import AurConfig, VersionRecord

from conftest import FakeResponse, FakeSession, aur_entry, info_payload, requested_names


def make_client(session, **settings) -> AurClient:
    return AurClient(AurConfig(**settings), session=session)


def known_versions_handler(known):
    """GET handler answering from a name -> version mapping."""
    def handler(url):
        entries = [aur_entry(name, known[name]) for name in requested_names(url) if name in known]
        return FakeResponse(payload=info_payload(entries))
    return handler


class TestPureHelpers:
    """Tests for batching, backoff and throttle arithmetic."""

    def test_partition_covers_every_name_once(self):
        names = [f"pkg{i:03d}" for i in range(250)]

        batches = partition_batches(names, 100)

        assert [len(b) for b in batches] == [100, 100, 50]
        assert [name for batch in batches for name in batch] == names

    def test_partition_floors_batch_size_at_one(self):
        assert partition_batches(["a", "b", "c"], 0) == [["a"], ["b"], ["c"]]

    def test_partition_of_nothing_is_empty(self):
        assert partition_batches([], 10) == []

    def test_backoff_doubles_and_caps(self):
        assert backoff_delay_ms(1) == 400
        assert backoff_delay_ms(2) == 800
        assert backoff_delay_ms(8) == 200 * 256
        assert backoff_delay_ms(30) == 200 * 256

    def test_throttle_rounds_up(self):
        assert throttle_delay_ms(2048, 1) == 2000
        assert throttle_delay_ms(1, 1) == 1
        assert throttle_delay_ms(1024 * 1024, 1024) == 1000

    def test_throttle_disabled(self):
        assert throttle_delay_ms(5000, 0) == 0
        assert throttle_delay_ms(0, 4) == 0


class TestUrlBuilding:
    """Tests for RPC and snapshot URL construction."""

    def test_compose_url_percent_encodes_names(self):
        client = make_client(None)

        url = client.compose_url(["foo", "lib32-bar", "a+b", "x@y"])

        assert url == ("https://aur.archlinux.org/rpc?v=5&type=info"
                       "&arg[]=foo&arg[]=lib32-bar&arg[]=a%2Bb&arg[]=x%40y")

    def test_compose_url_strips_trailing_slash(self):
        client = make_client(None, base_url="https://aur.example.org/rpc/")

        assert client.compose_url(["foo"]) == "https://aur.example.org/rpc?v=5&type=info&arg[]=foo"

    def test_snapshot_url_relative_path(self):
        client = make_client(None)

        url = client.snapshot_url("/cgit/aur.git/snapshot/foo.tar.gz")

        assert url == "https://aur.archlinux.org/cgit/aur.git/snapshot/foo.tar.gz"

    def test_snapshot_url_absolute_path_is_kept(self):
        client = make_client(None)
        absolute = "https://mirror.example.org/foo.tar.gz"

        assert client.snapshot_url(absolute) == absolute


class TestFetchVersions:
    """Tests for fetching, batching and response handling."""

    def test_empty_input_makes_no_request(self, pauses):
        session = FakeSession(known_versions_handler({}))
        client = make_client(session)

        assert asyncio.run(client.fetch_versions([])) == {}
        assert session.requests == []

    def test_returns_records_for_known_names(self, pauses):
        session = FakeSession(known_versions_handler({"yay": "12.3.5-1", "paru": "2.0.3-1"}))
        client = make_client(session)

        result = asyncio.run(client.fetch_versions(["yay", "paru", "not-in-aur"]))

        assert result == {
            "yay": VersionRecord("12.3.5-1"),
            "paru": VersionRecord("2.0.3-1"),
        }

    def test_sizes_are_copied_from_entries(self, pauses):
        def handler(url):
            return FakeResponse(payload=info_payload([
                aur_entry("yay", "12.3.5-1", CompressedSize=3000, InstalledSize=9000),
            ]))
        client = make_client(FakeSession(handler))

        result = asyncio.run(client.fetch_versions(["yay"]))

        assert result["yay"] == VersionRecord("12.3.5-1", 3000, 9000)

    def test_unrequested_names_are_dropped(self, pauses):
        def handler(url):
            return FakeResponse(payload=info_payload([
                aur_entry("yay", "1.0"),
                aur_entry("intruder", "6.6.6"),
            ]))
        client = make_client(FakeSession(handler))

        result = asyncio.run(client.fetch_versions(["yay"]))

        assert set(result) == {"yay"}

    def test_unrequested_entries_are_dropped_before_size_checks(self, pauses):
        def handler(url):
            return FakeResponse(payload=info_payload([
                aur_entry("yay", "1.0", CompressedSize=10),
                aur_entry("intruder", "6.6.6", CompressedSize="huge", InstalledSize=-1),
            ]))
        client = make_client(FakeSession(handler))

        result = asyncio.run(client.fetch_versions(["yay"]))

        assert result == {"yay": VersionRecord("1.0", 10, None)}

    def test_names_are_batched_by_max_args(self, pauses):
        known = {name: "1.0" for name in ["a", "b", "c", "d", "e"]}
        session = FakeSession(known_versions_handler(known))
        client = make_client(session, max_args=2)

        result = asyncio.run(client.fetch_versions(["e", "d", "c", "b", "a", "a"]))

        batches = sorted(requested_names(url) for url in session.get_urls)
        assert batches == [["a", "b"], ["c", "d"], ["e"]]
        assert set(result) == set(known)

    def test_retries_until_success(self, pauses):
        calls = []

        def handler(url):
            calls.append(url)
            if len(calls) == 1:
                return FakeResponse(status=503)
            return FakeResponse(payload=info_payload([aur_entry("yay", "1.0")]))
        client = make_client(FakeSession(handler), max_retries=3)

        result = asyncio.run(client.fetch_versions(["yay"]))

        assert result == {"yay": VersionRecord("1.0")}
        assert len(calls) == 2
        assert pauses == [backoff_delay_ms(1)]

    def test_exhausted_retries_raise_network_error(self, pauses):
        session = FakeSession(lambda url: FakeResponse(status=500))
        client = make_client(session, max_retries=3)

        with pytest.raises(NetworkError) as exc_info:
            asyncio.run(client.fetch_versions(["yay"]))

        assert exc_info.value.status == 500
        assert exc_info.value.url == session.get_urls[0]
        assert len(session.get_urls) == 3
        assert pauses == [400, 800]

    def test_transport_errors_are_retried(self, pauses):
        def handler(url):
            raise aiohttp.ClientConnectionError("connection refused")
        session = FakeSession(handler)
        client = make_client(session, max_retries=2)

        with pytest.raises(NetworkError) as exc_info:
            asyncio.run(client.fetch_versions(["yay"]))

        assert exc_info.value.status is None
        assert len(session.get_urls) == 2

    def test_timeouts_are_retried(self, pauses):
        attempts = []

        def handler(url):
            attempts.append(url)
            if len(attempts) < 3:
                raise asyncio.TimeoutError()
            return FakeResponse(payload=info_payload([aur_entry("yay", "1.0")]))
        client = make_client(FakeSession(handler), max_retries=3)

        assert asyncio.run(client.fetch_versions(["yay"])) == {"yay": VersionRecord("1.0")}
        assert pauses == [400, 800]

    def test_max_retries_below_one_still_attempts_once(self, pauses):
        session = FakeSession(lambda url: FakeResponse(status=502))
        client = make_client(session, max_retries=0)

        with pytest.raises(NetworkError):
            asyncio.run(client.fetch_versions(["yay"]))

        assert len(session.get_urls) == 1
        assert pauses == []

    def test_remote_error_field_is_not_retried(self, pauses):
        session = FakeSession(lambda url: FakeResponse(
            payload={"version": 5, "type": "error", "resultcount": 0, "results": [],
                     "error": "Too many package results."}))
        client = make_client(session, max_retries=5)

        with pytest.raises(NetworkError, match="Too many package results"):
            asyncio.run(client.fetch_versions(["yay"]))

        assert len(session.get_urls) == 1

    @pytest.mark.parametrize("payload", [
        ["not", "an", "object"],
        {"results": "nope"},
        {"results": [{"Name": "yay"}]},
        {"results": [{"Name": "yay", "Version": 12}]},
        {"results": ["yay"]},
        {"results": [{"Name": "yay", "Version": "1.0", "CompressedSize": "12"}]},
        {"results": [{"Name": "yay", "Version": "1.0", "InstalledSize": -1}]},
        {"results": [{"Name": "yay", "Version": "1.0", "InstalledSize": True}]},
        {"results": [{"Name": "yay", "Version": ""}]},
    ])
    def test_malformed_payload_raises_serialization_error(self, pauses, payload):
        session = FakeSession(lambda url: FakeResponse(payload=payload))
        client = make_client(session, max_retries=3)

        with pytest.raises(SerializationError):
            asyncio.run(client.fetch_versions(["yay"]))

        assert len(session.get_urls) == 1

    def test_undecodable_body_raises_serialization_error(self, pauses):
        session = FakeSession(lambda url: FakeResponse(body_error=ValueError("Expecting value")))
        client = make_client(session)

        with pytest.raises(SerializationError):
            asyncio.run(client.fetch_versions(["yay"]))

    def test_rate_limit_pauses_for_response_size(self, pauses):
        session = FakeSession(lambda url: FakeResponse(
            payload=info_payload([aur_entry("yay", "1.0")]),
            headers={"Content-Length": "2048"}))
        client = make_client(session, max_kib_per_sec=1)

        asyncio.run(client.fetch_versions(["yay"]))

        assert pauses == [2000]

    def test_no_rate_limit_when_disabled(self, pauses):
        session = FakeSession(lambda url: FakeResponse(
            payload=info_payload([aur_entry("yay", "1.0")]),
            headers={"Content-Length": "2048"}))
        client = make_client(session, max_kib_per_sec=0)

        asyncio.run(client.fetch_versions(["yay"]))

        assert pauses == []


class TestSizeProbe:
    """Tests for the HEAD request used when CompressedSize is missing."""

    def _handler(self, **extra):
        return lambda url: FakeResponse(payload=info_payload([aur_entry("yay", "1.0", **extra)]))

    def test_probe_fills_download_size(self, pauses):
        session = FakeSession(
            self._handler(URLPath="/cgit/aur.git/snapshot/yay.tar.gz", InstalledSize=10),
            head_handler=lambda url: FakeResponse(headers={"Content-Length": "4096"}))
        client = make_client(session)

        result = asyncio.run(client.fetch_versions(["yay"]))

        assert result["yay"] == VersionRecord("1.0", 4096, 10)
        assert session.head_urls == ["https://aur.archlinux.org/cgit/aur.git/snapshot/yay.tar.gz"]

    def test_probe_is_paced_by_rate_limit(self, pauses):
        session = FakeSession(
            self._handler(URLPath="/snapshot/yay.tar.gz"),
            head_handler=lambda url: FakeResponse(headers={"Content-Length": "4096"}))
        client = make_client(session, max_kib_per_sec=4)

        asyncio.run(client.fetch_versions(["yay"]))

        assert pauses == [1000]

    def test_no_probe_when_compressed_size_known(self, pauses):
        session = FakeSession(self._handler(URLPath="/snapshot/yay.tar.gz", CompressedSize=77))
        client = make_client(session)

        result = asyncio.run(client.fetch_versions(["yay"]))

        assert result["yay"].download_size == 77
        assert session.head_urls == []

    def test_no_probe_when_disabled(self, pauses):
        session = FakeSession(self._handler(URLPath="/snapshot/yay.tar.gz"))
        client = make_client(session, probe_sizes=False)

        result = asyncio.run(client.fetch_versions(["yay"]))

        assert result["yay"].download_size is None
        assert session.head_urls == []

    @pytest.mark.parametrize("head_handler", [
        lambda url: FakeResponse(status=404, headers={"Content-Length": "10"}),
        lambda url: FakeResponse(headers={}),
        lambda url: FakeResponse(headers={"Content-Length": "garbage"}),
    ])
    def test_probe_failure_leaves_size_unknown(self, pauses, head_handler):
        session = FakeSession(self._handler(URLPath="/snapshot/yay.tar.gz"), head_handler=head_handler)
        client = make_client(session)

        result = asyncio.run(client.fetch_versions(["yay"]))

        assert result["yay"] == VersionRecord("1.0")

    def test_probe_transport_error_is_tolerated(self, pauses):
        def head_handler(url):
            raise aiohttp.ClientConnectionError("reset")
        session = FakeSession(self._handler(URLPath="/snapshot/yay.tar.gz"), head_handler=head_handler)
        client = make_client(session)

        result = asyncio.run(client.fetch_versions(["yay"]))

        assert result["yay"].download_size is None


class TestConcurrency:
    """Tests for the admission gate and failure reporting across batches."""

    @pytest.mark.timeout(10)
    def test_in_flight_requests_never_exceed_limit(self, pauses):
        known = {f"pkg{i:02d}": "1.0" for i in range(12)}
        session = FakeSession(known_versions_handler(known), delay=0.01)
        client = make_client(session, max_args=1, max_parallel_requests=3)

        result = asyncio.run(client.fetch_versions(list(known)))

        assert set(result) == set(known)
        assert session.peak == 3
        assert session.active == 0

    @pytest.mark.timeout(10)
    def test_limit_holds_with_mixed_failures(self, pauses):
        def handler(url):
            name = requested_names(url)[0]
            if name.endswith(("1", "5")):
                return FakeResponse(status=503)
            return FakeResponse(payload=info_payload([aur_entry(name, "1.0")]))
        names = [f"pkg{i:02d}" for i in range(10)]
        session = FakeSession(handler, delay=0.01)
        client = make_client(session, max_args=1, max_parallel_requests=2, max_retries=2)

        with pytest.raises(NetworkError):
            asyncio.run(client.fetch_versions(names))

        assert session.peak <= 2
        assert session.active == 0
        # Every batch ran to completion despite the failures
        assert {requested_names(url)[0] for url in session.get_urls} == set(names)

    @pytest.mark.timeout(10)
    def test_earliest_failing_batch_is_reported(self, pauses):
        def handler(url):
            name = requested_names(url)[0]
            if name == "b":
                return FakeResponse(payload={"results": [], "error": "boom-b"}, delay=0.05)
            if name == "e":
                return FakeResponse(payload="garbage")
            return FakeResponse(payload=info_payload([aur_entry(name, "1.0")]))
        client = make_client(FakeSession(handler), max_args=1, max_parallel_requests=6)

        with pytest.raises(NetworkError, match="boom-b"):
            asyncio.run(client.fetch_versions(["a", "b", "c", "d", "e", "f"]))

    @pytest.mark.timeout(10)
    def test_cancellation_stops_outstanding_batches(self, pauses):
        session = FakeSession(known_versions_handler({}), delay=5)
        client = make_client(session, max_args=1, max_parallel_requests=2)

        async def scenario():
            task = asyncio.ensure_future(client.fetch_versions(["a", "b", "c"]))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert session.active == 0
        assert len(session.get_urls) == 2


class TestSessionOwnership:
    """Tests for session lifetime."""

    def test_injected_session_is_not_closed(self, pauses):
        session = FakeSession(known_versions_handler({"yay": "1.0"}))

        async def scenario():
            async with AurClient(AurConfig(), session=session) as client:
                return await client.fetch_versions(["yay"])

        assert asyncio.run(scenario()) == {"yay": VersionRecord("1.0")}
        assert session.closed is False

    def test_owned_session_is_closed(self):
        async def scenario():
            client = AurClient(AurConfig())
            session = client._get_session()
            assert isinstance(session, aiohttp.ClientSession)
            await client.close()
            return session

        session = asyncio.run(scenario())

        assert session.closed
