"""Tests for core infrastructure modules."""

from unittest.mock import MagicMock, patch
import asyncio
import logging
import time
import pytest
from pydantic import ValidationError

from vmjack.base.config import GCPConfig, PollingConfig, validate_config
from vmjack.base.retry import Backoff, retry_call
from vmjack.base.logger import VmjackLogger, StructuredFormatter
from vmjack.base.async_support import async_wrap, AsyncMixin


# ══════════════════════════════════════════════════════════════════════
# Config
# ══════════════════════════════════════════════════════════════════════

class TestGCPConfig:
    def test_explicit_values(self):
        cfg = GCPConfig(project_id="my-proj", zone="europe-west1-b")
        assert cfg.project_id == "my-proj"
        assert cfg.zone == "europe-west1-b"

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "env-proj")
        monkeypatch.setenv("VMJACK_ZONE", "asia-east1-a")
        cfg = GCPConfig()
        assert cfg.project_id == "env-proj"
        assert cfg.zone == "asia-east1-a"

    def test_default_zone(self, monkeypatch):
        monkeypatch.delenv("VMJACK_ZONE", raising=False)
        monkeypatch.delenv("CLOUDSDK_COMPUTE_ZONE", raising=False)
        assert GCPConfig(project_id="p").zone == "us-central1-f"

    def test_missing_project(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
        monkeypatch.delenv("GCLOUD_PROJECT", raising=False)
        with pytest.raises(ValidationError, match="project_id is required"):
            GCPConfig()

    def test_missing_credentials_file(self, tmp_path):
        with pytest.raises(ValidationError, match="Credentials file not found"):
            GCPConfig(project_id="p", credentials_path=str(tmp_path / "nope.json"))

    def test_nested_polling(self):
        cfg = GCPConfig(project_id="p", polling={"timeout": 5, "interval": 1})
        assert cfg.polling.timeout == 5
        assert cfg.polling.interval == 1

    def test_extra_forbidden(self):
        with pytest.raises(ValidationError):
            GCPConfig(project_id="p", region="us")


class TestPollingConfig:
    def test_defaults(self):
        cfg = PollingConfig()
        assert cfg.backoff_factor == 1.0
        assert cfg.max_poll_attempts == 5

    def test_interval_floor(self):
        with pytest.raises(ValidationError):
            PollingConfig(interval=0)

    def test_cap_below_interval(self):
        with pytest.raises(ValidationError, match="max_interval"):
            PollingConfig(interval=10, max_interval=5)

    def test_backoff_factor_below_one(self):
        with pytest.raises(ValidationError):
            PollingConfig(backoff_factor=0.5)


class TestValidateConfig:
    def test_gcp(self):
        cfg = validate_config("gcp", {"project_id": "p"})
        assert isinstance(cfg, GCPConfig)
        assert cfg.project_id == "p"

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="No config model"):
            validate_config("azure", {"key": "val"})


# ══════════════════════════════════════════════════════════════════════
# Retry
# ══════════════════════════════════════════════════════════════════════

class TestRetry:
    def test_success_no_retry(self):
        fn = MagicMock(return_value="ok")
        assert retry_call(fn, 1, max_attempts=3, delays=[0], retryable=(ValueError,)) == "ok"
        fn.assert_called_once_with(1)

    def test_retries_on_failure(self):
        fn = MagicMock(side_effect=[ValueError("fail"), ValueError("fail"), "ok"])
        result = retry_call(fn, max_attempts=3, delays=[0, 0], retryable=(ValueError,))
        assert result == "ok"
        assert fn.call_count == 3

    def test_max_attempts_exceeded(self):
        fn = MagicMock(side_effect=ValueError("nope"))
        with pytest.raises(ValueError):
            retry_call(fn, max_attempts=2, delays=[0], retryable=(ValueError,))
        assert fn.call_count == 2

    def test_non_retryable_raises_immediately(self):
        fn = MagicMock(side_effect=TypeError("not retryable"))
        with pytest.raises(TypeError):
            retry_call(fn, max_attempts=3, delays=[0], retryable=(ValueError,))
        assert fn.call_count == 1

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            retry_call(MagicMock(), max_attempts=0, delays=[], retryable=(ValueError,))

    def test_backoff_delays(self, sleep):
        fn = MagicMock(side_effect=ConnectionError("reset"))
        with pytest.raises(ConnectionError):
            retry_call(fn, max_attempts=4, delays=Backoff(1, 3, 2), retryable=(ConnectionError,))
        assert [c.args[0] for c in sleep.call_args_list] == [1, 2, 3]

    def test_delays_shortened_to_deadline(self, sleep):
        fn = MagicMock(side_effect=[ConnectionError("reset"), "ok"])
        deadline = time.monotonic() + 0.5
        result = retry_call(
            fn, max_attempts=3, delays=[10], retryable=(ConnectionError,), deadline=deadline
        )
        assert result == "ok"
        assert sleep.call_args.args[0] <= 0.5

    def test_no_attempt_after_deadline(self, sleep):
        fn = MagicMock(side_effect=ConnectionError("reset"))
        with pytest.raises(ConnectionError):
            retry_call(
                fn,
                max_attempts=5,
                delays=[10],
                retryable=(ConnectionError,),
                deadline=time.monotonic() - 1,
            )
        assert fn.call_count == 1
        sleep.assert_not_called()


# ══════════════════════════════════════════════════════════════════════
# Logger
# ══════════════════════════════════════════════════════════════════════

class TestVmjackLogger:
    def test_log_operation(self, capfd):
        logger = VmjackLogger("test_vj")
        logger.logger.setLevel(logging.DEBUG)
        logger.info(
            "test message", provider="gcp", resource="web-1", operation="stop",
            operation_id="operation-1",
        )
        captured = capfd.readouterr()
        assert "test message" in captured.err
        assert "operation-1" in captured.err

    def test_structured_formatter(self):
        fmt = StructuredFormatter()
        record = logging.LogRecord(
            name="test", level=logging.INFO, pathname="", lineno=0,
            msg="hi", args=(), exc_info=None,
        )
        record.provider = "gcp"
        record.resource = "web-1"
        record.request_id = "abc"
        output = fmt.format(record)
        assert '"provider": "gcp"' in output
        assert '"resource": "web-1"' in output
        assert '"request_id": "abc"' in output
        assert "operation_id" not in output

    def test_tracker_logs_submission(self, provider):
        from vmjack.base.operations import OperationTracker

        provider.add_instance("web-1")
        tracker = OperationTracker(provider)
        with patch.object(tracker._log, "info") as info:
            op = tracker.submit("stop", lambda: provider.stop("web-1"), target="web-1")
        info.assert_called_once()
        assert info.call_args.kwargs["operation_id"] == op.id
        assert info.call_args.kwargs["resource"] == provider.instance_link("web-1")


# ══════════════════════════════════════════════════════════════════════
# Async Support
# ══════════════════════════════════════════════════════════════════════

class TestAsyncWrap:
    def test_basic(self):
        def sync_fn(x: int) -> int:
            return x * 2

        async_fn = async_wrap(sync_fn)
        result = asyncio.run(async_fn(5))
        assert result == 10

    def test_preserves_name(self):
        def my_func():
            pass

        wrapped = async_wrap(my_func)
        assert wrapped.__name__ == "my_func"


class TestAsyncMixin:
    def test_auto_generates(self):
        class MyHandle(AsyncMixin):
            def reload(self) -> str:
                return "done"

        handle = MyHandle()
        assert hasattr(handle, "areload")
        result = asyncio.run(handle.areload())
        assert result == "done"

    def test_skips_properties(self):
        class MyHandle(AsyncMixin):
            @property
            def status(self) -> str:
                return "RUNNING"

        assert not hasattr(MyHandle, "astatus")
