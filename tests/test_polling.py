import logging

import httpx
import pytest

from promptcraft.schemas.generation import GenerationResult
from promptcraft.services.generation.errors import (
    GenerationTimeoutError,
    MalformedResponseError,
    OperationFailedError,
    RemoteError,
)
from promptcraft.services.generation.polling import OperationPoller, PollPolicy, first_match

STATUS_URL = "https://remote.test/operations/op-1"


def _sequence(*payloads):
    """Handler answering 200 with the given JSON payloads in order, repeating the last one."""
    queue = list(payloads)

    def handler(request):
        payload = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(200, json=payload)

    return handler


def _extract(payload):
    return GenerationResult(output_url=payload["response"]["uri"])


def test_policy_linear_backoff_is_capped():
    policy = PollPolicy(initial_delay=10, increment=5, max_delay=60)
    delays = [10.0]
    for _ in range(12):
        delays.append(policy.next_delay(delays[-1]))
    assert delays[:4] == [10, 15, 20, 25]
    assert max(delays) == 60


def test_policy_exponential_backoff():
    policy = PollPolicy(initial_delay=5, increment=0, factor=1.5, max_delay=60)
    assert policy.next_delay(5) == 7.5
    assert policy.next_delay(50) == 60


def test_first_match_walks_keys_and_indexes():
    payload = {"a": {"items": [{"uri": "first"}]}, "b": "second"}
    assert first_match(payload, [("missing",), ("a", "items", 0, "uri"), ("b",)]) == "first"
    assert first_match(payload, [("a", "items", 3, "uri"), ("b",)]) == "second"
    assert first_match(payload, [("a", "items", 0, "nope")]) is None
    assert first_match({"x": ""}, [("x",)]) is None


@pytest.mark.asyncio
async def test_poll_returns_extracted_result(mock_client, fake_sleep):
    client, recorder = mock_client(_sequence(
        {"done": False},
        {"done": True, "response": {"uri": "https://cdn.test/v.mp4"}},
    ))
    poller = OperationPoller(PollPolicy(initial_delay=10, increment=5), label="Veo", sleep=fake_sleep)

    result = await poller.poll(client, STATUS_URL, extract=_extract, headers={"x-goog-api-key": "k"})

    assert result.output_url == "https://cdn.test/v.mp4"
    assert fake_sleep.delays == [10, 15]
    assert len(recorder.requests) == 2
    assert recorder.requests[0].headers["x-goog-api-key"] == "k"


@pytest.mark.asyncio
async def test_poll_done_with_error_fails_after_five_not_done(mock_client, fake_sleep):
    client, recorder = mock_client(_sequence(
        *[{"done": False}] * 5,
        {"done": True, "error": {"message": "quota"}},
    ))
    poller = OperationPoller(PollPolicy(), label="Veo", sleep=fake_sleep)

    with pytest.raises(OperationFailedError) as exc_info:
        await poller.poll(client, STATUS_URL, extract=_extract)

    assert len(recorder.requests) == 6
    assert "quota" in str(exc_info.value)
    assert isinstance(exc_info.value, RemoteError)


@pytest.mark.asyncio
async def test_poll_times_out_after_max_attempts(mock_client, fake_sleep):
    client, recorder = mock_client(lambda request: httpx.Response(200, json={"done": False}))
    poller = OperationPoller(PollPolicy(max_attempts=4), label="Sora", sleep=fake_sleep)

    with pytest.raises(GenerationTimeoutError, match="timed out after 4 attempts"):
        await poller.poll(client, STATUS_URL, extract=_extract)
    assert len(recorder.requests) == 4


@pytest.mark.asyncio
async def test_poll_non_2xx_is_fatal(mock_client, fake_sleep):
    client, recorder = mock_client(lambda request: httpx.Response(503, text="unavailable"))
    poller = OperationPoller(PollPolicy(), label="Veo", sleep=fake_sleep)

    with pytest.raises(RemoteError) as exc_info:
        await poller.poll(client, STATUS_URL, extract=_extract)
    assert exc_info.value.status_code == 503
    assert exc_info.value.body == "unavailable"
    assert len(recorder.requests) == 1


@pytest.mark.asyncio
async def test_poll_invalid_json_is_malformed(mock_client, fake_sleep):
    client, _ = mock_client(lambda request: httpx.Response(200, text="<html>"))
    poller = OperationPoller(PollPolicy(), sleep=fake_sleep)

    with pytest.raises(MalformedResponseError):
        await poller.poll(client, STATUS_URL, extract=_extract)


@pytest.mark.asyncio
async def test_poll_custom_hooks(mock_client, fake_sleep):
    client, _ = mock_client(_sequence(
        {"status": "in_progress"},
        {"status": "failed", "error": {"message": "moderation"}},
    ))
    poller = OperationPoller(PollPolicy(), label="Sora", sleep=fake_sleep)

    with pytest.raises(OperationFailedError, match="moderation"):
        await poller.poll(
            client,
            STATUS_URL,
            extract=_extract,
            is_done=lambda p: p["status"] in ("completed", "failed"),
            get_error=lambda p: p["error"]["message"] if p["status"] == "failed" else None,
        )


@pytest.mark.asyncio
async def test_poll_debug_log_reports_upcoming_delay(mock_client, fake_sleep, caplog):
    client, _ = mock_client(_sequence(
        {"done": False},
        {"done": False},
        {"done": True, "response": {"uri": "https://cdn.test/v.mp4"}},
    ))
    poller = OperationPoller(PollPolicy(initial_delay=10, increment=5), label="Veo", sleep=fake_sleep)

    with caplog.at_level(logging.DEBUG, logger="promptcraft.services.generation.polling"):
        await poller.poll(client, STATUS_URL, extract=_extract)

    assert fake_sleep.delays == [10, 15, 20]
    assert "Veo poll 1: not done, next delay 15.0s" in caplog.text
    assert "Veo poll 2: not done, next delay 20.0s" in caplog.text
