import json

import pytest

from jarwik import cli


@pytest.mark.asyncio
async def test_classify_prints_parser_result(capsys):
    await cli.classify("remind me in 20 minutes to call mom", use_fallback=False)

    out = capsys.readouterr().out
    report, decision = out.split("\nFallback: ")
    data = json.loads(report)
    assert data["intent"] == "set_reminder"
    assert data["source"] == "rules"
    assert decision.strip() == "not needed"


def test_resolve_prints_time(capsys):
    cli.resolve("in 20 minutes", "Asia/Kolkata")

    out = capsys.readouterr().out
    assert "For user: in 20 minutes" in out
    assert "Timezone: Asia/Kolkata" in out


def test_resolve_unparseable_exits(capsys):
    with pytest.raises(SystemExit) as exc_info:
        cli.resolve("blorp", "Asia/Kolkata")

    assert exc_info.value.code == 1
    assert "Could not resolve 'blorp'" in capsys.readouterr().out


def test_check_config_lists_integrations(capsys):
    cli.check_config()

    out = capsys.readouterr().out
    assert "Twilio:" in out
    assert "Timezone:" in out
