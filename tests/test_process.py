"""
Unit tests for local command execution.
"""

import pytest

from ebs_blocker.utils.process import CommandResult, run_command


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_success(self):
        result = await run_command(["echo", "mounted"])

        assert result.ok
        assert result.output.strip() == "mounted"

    @pytest.mark.asyncio
    async def test_failure_captures_stderr(self):
        result = await run_command(["sh", "-c", "echo busy >&2; exit 32"])

        assert not result.ok
        assert result.returncode == 32
        assert "busy" in result.output

    @pytest.mark.asyncio
    async def test_missing_binary(self):
        result = await run_command(["definitely-not-a-real-binary-xyz"])

        assert result.returncode == 127
        assert not result.ok

    def test_result_ok(self):
        assert CommandResult(returncode=0, output="").ok
        assert not CommandResult(returncode=1, output="").ok
