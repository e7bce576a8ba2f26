import pytest

from chat_lifecycle.errors import CompletionRejectedError, NetworkError, ResponseFormatError
from chat_lifecycle.utils.retry import RetryPolicy


class Recorder:
    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.attempts = 0
        self.delays: list[float] = []

    async def sleep(self, delay: float) -> None:
        self.delays.append(delay)

    async def attempt(self):
        self.attempts += 1
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_compute_delay_exponential_and_linear():
    exponential = RetryPolicy(base_delay=0.5, exponential_backoff=True)
    linear = RetryPolicy(base_delay=0.5, exponential_backoff=False)

    assert [exponential.compute_delay(n) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]
    assert [linear.compute_delay(n) for n in range(4)] == [0.5, 1.0, 1.5, 2.0]


def test_negative_configuration_is_rejected():
    with pytest.raises(ValueError):
        RetryPolicy(max_retries=-1)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-0.1)


@pytest.mark.asyncio
async def test_returns_first_success_without_sleeping():
    recorder = Recorder("ok")
    policy = RetryPolicy(sleep=recorder.sleep)

    assert await policy.retry_operation(recorder.attempt, "op") == "ok"
    assert recorder.attempts == 1
    assert recorder.delays == []


@pytest.mark.asyncio
async def test_network_errors_are_retried_with_backoff():
    recorder = Recorder(NetworkError("down"), NetworkError("still down"), "ok")
    policy = RetryPolicy(max_retries=3, base_delay=1.0, sleep=recorder.sleep)

    assert await policy.retry_operation(recorder.attempt, "op") == "ok"
    assert recorder.attempts == 3
    assert recorder.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_exhaustion_reraises_last_error(log_records):
    errors = [NetworkError(f"failure {i}") for i in range(3)]
    recorder = Recorder(*errors)
    policy = RetryPolicy(max_retries=2, base_delay=0.0, sleep=recorder.sleep)

    with pytest.raises(NetworkError) as excinfo:
        await policy.retry_operation(recorder.attempt, "completion")

    assert excinfo.value is errors[-1]
    assert recorder.attempts == 3
    assert [r["level"].name for r in log_records if "completion" in r["message"]] == ["WARNING", "WARNING", "ERROR"]


@pytest.mark.asyncio
async def test_zero_retries_means_single_attempt():
    recorder = Recorder(NetworkError("down"))
    policy = RetryPolicy(max_retries=0, sleep=recorder.sleep)

    with pytest.raises(NetworkError):
        await policy.retry_operation(recorder.attempt, "op")
    assert recorder.attempts == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [CompletionRejectedError("bad request", status=400), ResponseFormatError("empty")])
async def test_non_network_errors_are_not_retried(error):
    recorder = Recorder(error, "never reached")
    policy = RetryPolicy(max_retries=3, sleep=recorder.sleep)

    with pytest.raises(type(error)):
        await policy.retry_operation(recorder.attempt, "op")
    assert recorder.attempts == 1
    assert recorder.delays == []
