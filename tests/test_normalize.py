from datetime import UTC, datetime

import pytest

from ingest.errors import NormalizationError
from ingest.parsers.document import parse_document
from ingest.parsers.xml import XmlNode, parse_xml
from normalize.models import MsgType, warning_from_dict, warning_to_dict
from normalize.normalize import first_text, normalize_alert, severity_level


def _normalize_file(path, source: str = "test"):
    root, _ = parse_xml(path.read_bytes())
    return normalize_alert(root, source)


def test_normalize_full_alert(fixtures_dir) -> None:
    warning = _normalize_file(fixtures_dir / "cap_alert.xml", "dwd")
    assert warning is not None
    assert warning.identifier == "2.49.0.0.276.0.DWD.PVW.1760871000000.a1b2c3d4.MUL"
    assert warning.msg_type is MsgType.ALERT
    assert warning.source == "dwd"
    assert warning.sent_at == datetime(2026, 10, 19, 11, 30, tzinfo=UTC)
    assert [i.language for i in warning.infos] == ["de-DE", "en-GB"]

    info = warning.infos[0]
    assert info.event == "STURMBÖEN"
    assert info.severity_level == 3
    assert info.onset == datetime(2026, 10, 19, 11, 0, tzinfo=UTC)
    assert info.expires == datetime(2026, 10, 19, 18, 0, tzinfo=UTC)
    assert info.event_codes == (("PROFILE_VERSION", "2.1.11"), ("II", "52"))
    assert info.parameters == (("gust_speed", "70", ""),)
    assert info.sender_name == "Deutscher Wetterdienst"

    [area] = info.areas
    assert area.area_desc == "Stadt Musterhausen"
    assert area.cell_ids == ("805362004", "805362008")
    assert ("AREAID", "10000") in area.geocodes


def test_normalize_prefixed_alert(fixtures_dir) -> None:
    warning = _normalize_file(fixtures_dir / "cap_prefixed.xml")
    assert warning is not None
    assert warning.identifier == "prefixed-001"
    assert warning.msg_type is MsgType.UPDATE
    info = warning.infos[0]
    assert info.event == "FROST"
    assert info.severity_level == 2
    assert info.onset is None
    assert info.areas[0].cell_ids == ("105362000", "105362001")


def test_unprefixed_value_wins() -> None:
    root, _ = parse_xml(
        '<alert xmlns:cap="urn:oasis:names:tc:emergency:cap:1.2">'
        "<cap:event>prefixed</cap:event><event>plain</event></alert>"
    )
    assert first_text(root, "event", "cap:event") == "plain"


def test_unprefixed_value_wins_when_both_spellings_share_a_namespace() -> None:
    root, _ = parse_xml(
        '<alert xmlns:cap="urn:oasis:names:tc:emergency:cap:1.2"'
        ' xmlns="urn:oasis:names:tc:emergency:cap:1.2">'
        "<identifier>shared-ns</identifier>"
        "<info><cap:event>PREFIXED</cap:event><event>PLAIN</event></info></alert>"
    )
    info = root.find("info")
    assert [c.name for c in info.children] == ["cap:event", "event"]
    assert first_text(info, "event", "cap:event") == "PLAIN"

    warning = normalize_alert(root, "inline")
    assert warning.infos[0].event == "PLAIN"


def test_first_text_skips_empty_values_and_reads_attributes() -> None:
    node = XmlNode(
        name="geocode",
        attrs={"valueName": "WARNCELLID"},
        children=(XmlNode(name="valueName", text=""),),
    )
    assert first_text(node, "valueName") == "WARNCELLID"
    assert first_text(node, "value") is None


def test_legacy_atom_entry(fixtures_dir) -> None:
    document = parse_document((fixtures_dir / "atom_legacy.xml").read_bytes())
    warning = normalize_alert(document.entries[0].alert, "legacy")
    assert warning is not None
    assert warning.identifier == "urn:legacy:entry-7"
    assert warning.msg_type is MsgType.UNKNOWN
    [info] = warning.infos
    assert info.event == "GLÄTTE"
    assert info.headline == "Amtliche WARNUNG vor GLÄTTE"
    assert info.areas[0].area_desc == "Gemeinde Musterdorf"
    assert info.areas[0].cell_ids == ("805362099",)


def test_alert_without_info_keeps_one_block() -> None:
    root, _ = parse_xml("<alert><identifier>bare</identifier><msgType>Alert</msgType></alert>")
    warning = normalize_alert(root, "test")
    assert warning is not None
    assert len(warning.infos) == 1
    assert warning.infos[0].event == ""


def test_no_alert_returns_none() -> None:
    root, _ = parse_xml("<feed><title>empty</title></feed>")
    assert normalize_alert(root, "test") is None


def test_invalid_timestamp_raises() -> None:
    root, _ = parse_xml(
        "<alert><identifier>x</identifier><info><onset>tomorrow</onset></info></alert>"
    )
    with pytest.raises(NormalizationError):
        normalize_alert(root, "test")


def test_explicit_past_flag() -> None:
    root, _ = parse_xml(
        "<alert><info><event>A</event><past>true</past></info>"
        "<info><event>B</event><parameter><valueName>PAST</valueName>"
        "<value>TRUE</value></parameter></info>"
        "<info><event>C</event></info></alert>"
    )
    warning = normalize_alert(root, "test")
    assert [i.past for i in warning.infos] == [True, True, False]


@pytest.mark.parametrize(
    ("severity", "level"),
    [
        ("Unknown", 1),
        ("minor", 2),
        ("MODERATE", 3),
        ("Severe", 4),
        ("extreme", 5),
        ("catastrophic", 0),
        ("", 0),
        (None, 0),
    ],
)
def test_severity_level(severity, level) -> None:
    assert severity_level(severity) == level


def test_serialization_keeps_identifier_severity_and_cells(fixtures_dir) -> None:
    warning = _normalize_file(fixtures_dir / "cap_alert.xml")
    restored = warning_from_dict(warning_to_dict(warning))
    assert restored == warning
    assert restored.identifier == warning.identifier
    assert [i.severity_level for i in restored.infos] == [3, 3]
    assert {c for i in restored.infos for a in i.areas for c in a.cell_ids} == {
        "805362004",
        "805362008",
    }
