import pytest

from geo.region import build_region_filter, derive_parent_cell_id, match_tier, matches
from ingest.errors import ConfigurationError
from normalize.models import Area, InfoBlock, MatchTier, MsgType, WeatherWarning


def _warning(*areas: Area, identifier: str = "w") -> WeatherWarning:
    return WeatherWarning(
        identifier=identifier,
        sender="",
        sent_at=None,
        status="Actual",
        msg_type=MsgType.ALERT,
        scope="Public",
        source="test",
        infos=(InfoBlock(event="STURM", areas=areas),),
    )


def test_exact_cell_match() -> None:
    region = build_region_filter("805362004")
    assert matches(_warning(Area("Stadt Musterhausen", ("805362004",))), region)


def test_other_cell_without_name_fallback() -> None:
    region = build_region_filter("805362004")
    assert not matches(_warning(Area("Stadt Musterhausen", ("805362005",))), region)


def test_name_fallback_matches_area_desc_substring() -> None:
    region = build_region_filter(
        "805362004", name_fallback=True, area_names=["Musterhausen"]
    )
    warning = _warning(Area("Stadt Musterhausen", ("805362005",)))
    assert matches(warning, region)
    assert match_tier(warning, region) is MatchTier.NAME


def test_name_tokens_ignored_when_fallback_disabled() -> None:
    region = build_region_filter("805362004", area_names=["musterhausen"])
    assert not matches(_warning(Area("Stadt Musterhausen", ("805362005",))), region)


def test_parent_tier_is_reported_separately() -> None:
    region = build_region_filter("805362004", derive_parent=True)
    assert region.parent_cell_id == "105362000"
    district = _warning(Area("Kreis Muster", ("105362000",)))
    assert match_tier(district, region) is MatchTier.PARENT


def test_most_specific_tier_wins_within_one_warning() -> None:
    region = build_region_filter(
        "805362004", derive_parent=True, name_fallback=True, area_names=["kreis"]
    )
    warning = _warning(
        Area("Kreis Muster", ("105362000",)),
        Area("Stadt Musterhausen", ("805362004",)),
    )
    assert match_tier(warning, region) is MatchTier.EXACT


def test_match_across_info_blocks() -> None:
    region = build_region_filter("805362004")
    warning = WeatherWarning(
        identifier="multi",
        sender="",
        sent_at=None,
        status="",
        msg_type=MsgType.ALERT,
        scope="",
        source="test",
        infos=(
            InfoBlock(areas=(Area("Elsewhere", ("809999999",)),)),
            InfoBlock(areas=(Area("Here", ("805362004",)),)),
        ),
    )
    assert matches(warning, region)


@pytest.mark.parametrize(
    ("cell_id", "parent"),
    [("805362004", "105362000"), ("105362000", None), ("905362004", None), ("8053", None)],
)
def test_derive_parent_cell_id(cell_id, parent) -> None:
    assert derive_parent_cell_id(cell_id) == parent


@pytest.mark.parametrize("bad", ["80536200", "8053620041", "80536200x", "Musterhausen"])
def test_invalid_cell_id_is_configuration_error(bad) -> None:
    with pytest.raises(ConfigurationError):
        build_region_filter(bad)


def test_name_only_filter_is_allowed() -> None:
    region = build_region_filter(None, name_fallback=True, area_names=[" Musterhausen ", ""])
    assert region.cell_id is None
    assert region.name_tokens == ("musterhausen",)


def test_empty_filter_is_rejected() -> None:
    with pytest.raises(ConfigurationError):
        build_region_filter("", name_fallback=True)
