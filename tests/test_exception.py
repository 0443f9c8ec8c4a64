from __future__ import annotations

from tomato.exception import DriverError, ReadinessTimeout, ResetError, StepAssertion, TomatoError


def test_wrap_prepends_frames_and_keeps_cause():
    try:
        try:
            raise OSError("connection refused")
        except OSError as e:
            raise DriverError("dial failed") from e
    except DriverError as err:
        wrapped = err.wrap("open").wrap("db")

    assert str(wrapped) == "db: open: dial failed"
    assert isinstance(wrapped.root_cause, OSError)
    assert isinstance(wrapped, TomatoError)


def test_step_assertion_renders_aligned_details():
    e = StepAssertion("unexpected response body", {"expected": '{"a": 1}', "actual body": '{\n"a": 2\n}'})

    lines = str(e).splitlines()
    assert lines[0] == "unexpected response body"
    assert lines[1] == '  expected    : {"a": 1}'
    assert lines[2] == "  actual body : {"
    assert lines[3].startswith(" " * 16)


def test_readiness_timeout_lists_lagging_with_last_error():
    e = ReadinessTimeout({"db": DriverError("refused"), "mq": None}, timeout=1.5)

    assert str(e) == "resources not ready after 1.5s: db (refused), mq"
    assert set(e.lagging) == {"db", "mq"}


def test_reset_error_names_resource():
    e = ResetError("kv", DriverError("boom"))

    assert str(e) == "reset kv: boom"
    assert e.resource == "kv"


def test_exported_errors_share_the_base():
    import tomato.exception as errors

    for name in errors.__all__:
        assert issubclass(getattr(errors, name), TomatoError), name
    # cancellation is reported through RunSummary.cancelled, not raised
    assert not hasattr(errors, "SuiteCancelled")
