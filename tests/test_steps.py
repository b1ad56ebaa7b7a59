"""Step runner: failure isolation and unconditional screenshot capture."""
import pytest

from settlement_validation.errors import ConvergenceTimeoutError
from settlement_validation.steps import PASSED_DETAILS, StepRunner, describe_error

pytestmark = pytest.mark.asyncio


class FakeCapture:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.names = []

    async def __call__(self, name):
        self.names.append(name)
        if name in self.fail_on:
            raise OSError("disk full")
        return f"/shots/{name}"


async def _ok():
    return None


async def _boom():
    raise ConvergenceTimeoutError("Timed out after 15.0s waiting for customer row")


async def test_passing_step_records_screenshot():
    capture = FakeCapture()
    runner = StepRunner(capture)

    result = await runner.run_step(1, "Load Application", "step1_homepage.png", _ok)

    assert result.passed
    assert result.details == PASSED_DETAILS
    assert result.screenshot_path == "/shots/step1_homepage.png"
    assert result.to_dict()["screenshotPath"] == "/shots/step1_homepage.png"


async def test_failure_does_not_stop_later_steps():
    capture = FakeCapture()
    runner = StepRunner(capture)

    await runner.run_step(1, "first", "a.png", _ok)
    await runner.run_step(2, "second", "b.png", _boom)
    await runner.run_step(3, "third", "c.png", _ok)

    assert [r.passed for r in runner.results] == [True, False, True]
    assert capture.names == ["a.png", "b.png", "c.png"]
    assert "customer row" in runner.results[1].details
    assert not runner.all_passed
    assert [r.step for r in runner.failed()] == [2]


async def test_capture_failure_appends_to_existing_reason():
    runner = StepRunner(FakeCapture(fail_on={"b.png"}))

    result = await runner.run_step(2, "second", "b.png", _boom)

    assert not result.passed
    assert result.details.startswith("Timed out after 15.0s")
    assert result.details.endswith("Screenshot failed: disk full")
    assert result.screenshot_path is None


async def test_capture_failure_fails_an_otherwise_passing_step():
    runner = StepRunner(FakeCapture(fail_on={"a.png"}))

    result = await runner.run_step(1, "first", "a.png", _ok)

    assert not result.passed
    assert result.details == f"{PASSED_DETAILS} Screenshot failed: disk full"


async def test_role_checks_use_custom_pass_text():
    runner = StepRunner(FakeCapture(), passed_details="Passed")
    result = await runner.run_step(1, "User logout", "user_1_step5_logout.png", _ok)
    assert result.to_check() == {"name": "User logout", "pass": True, "details": "Passed"}
    assert runner.screenshot_paths() == ["/shots/user_1_step5_logout.png"]


async def test_results_are_a_copy():
    runner = StepRunner()
    await runner.run_step(1, "first", None, _ok)
    runner.results.clear()
    assert len(runner.results) == 1


async def test_describe_error_falls_back_to_class_name():
    assert describe_error(ValueError()) == "ValueError"
    assert describe_error(ValueError("  bad  ")) == "bad"
