from __future__ import annotations

import asyncio

import pytest

from clarify.gates.repair import RepairRequester

from conftest import ScriptedAdapter

pytestmark = pytest.mark.asyncio


async def test_valid_json_needs_no_repair(settings):
    adapter = ScriptedAdapter()
    requester = RepairRequester(adapter, settings)
    result = await requester.parse_with_repair('{"a": 1}', "a JSON object")
    assert result.ok
    assert result.data == {"a": 1}
    assert adapter.requests == []


async def test_single_repair_round_trip(settings):
    adapter = ScriptedAdapter('{"fixed": true}')
    requester = RepairRequester(adapter, settings)
    result = await requester.parse_with_repair("trigger: boss yelled", "a JSON object with keys: trigger")
    assert result.ok
    assert result.data == {"fixed": True}

    assert len(adapter.requests) == 1
    request = adapter.requests[0]
    assert request.temperature == 0.0
    assert request.max_tokens == settings.budget("repair")
    assert "strict JSON reformatter" in request.system_text
    assert "a JSON object with keys: trigger" in request.user_text
    assert "trigger: boss yelled" in request.user_text


async def test_failed_repair_reports_failure_without_second_attempt(settings):
    adapter = ScriptedAdapter("still not json")
    requester = RepairRequester(adapter, settings)
    result = await requester.parse_with_repair("nope", "a JSON array of up to 3 strings")
    assert not result.ok
    assert len(adapter.requests) == 1


async def test_repair_propagates_completion_errors(settings):
    adapter = ScriptedAdapter(asyncio.TimeoutError())
    requester = RepairRequester(adapter, settings)
    with pytest.raises(asyncio.TimeoutError):
        await requester.repair("a JSON object", "broken")
