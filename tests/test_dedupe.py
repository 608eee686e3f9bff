from cluster.dedupe import dedupe, dedupe_key
from normalize.models import InfoBlock, MsgType, WeatherWarning


def _warning(identifier: str | None, event: str = "STURM") -> WeatherWarning:
    return WeatherWarning(
        identifier=identifier,
        sender="",
        sent_at=None,
        status="",
        msg_type=MsgType.ALERT,
        scope="",
        source="test",
        infos=(InfoBlock(event=event),),
    )


def test_dedupe_keeps_first_per_identifier() -> None:
    first = _warning("a", "first")
    warnings = [first, _warning("b"), _warning("a", "second")]
    result = dedupe(warnings)
    assert [w.identifier for w in result] == ["a", "b"]
    assert result[0] is first


def test_dedupe_is_idempotent_and_never_grows() -> None:
    warnings = [_warning("a"), _warning(None, "x"), _warning("a"), _warning(None, "x")]
    once = dedupe(warnings)
    assert dedupe(once) == once
    assert len(once) <= len(warnings)
    assert len(once) == 2


def test_anonymous_distinct_warnings_are_not_merged() -> None:
    result = dedupe([_warning(None, "STURM"), _warning(None, "FROST")])
    assert len(result) == 2


def test_dedupe_key_prefers_identifier() -> None:
    assert dedupe_key(_warning("abc")) == "id:abc"
    assert dedupe_key(_warning(None)).startswith("sha256:")
