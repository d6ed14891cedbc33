from __future__ import annotations

import pytest

from gachalog.core.enums import Classification
from gachalog.schemas.stats import PoolMetadata
from gachalog.services.pity import PityConfig, classify_six_star, resolve_item_name
from tests.factories import make_record, make_weapon

CONFIG = PityConfig(standard_six_stars=frozenset({"chr_0009_azrila", "chr_0015_lifeng"}))

LAEVATAIN_BANNER = PoolMetadata.model_validate(
    {
        "up6_name": "Laevatain",
        "all": [
            {"id": "icon_chr_0016_laevat", "name": "Laevatain", "rarity": 6},
            {"id": "chr_0009_azrila", "name": "Azrila", "rarity": 6},
            {"id": "chr_0030_minor", "name": "Minor", "rarity": 5},
        ],
    }
)


def test_rate_up_id_match_is_featured() -> None:
    record = make_record(1, 6, char_id="chr_0016_laevat", char_name="Laevatain")

    assert classify_six_star(record, LAEVATAIN_BANNER, CONFIG) == Classification.FEATURED


def test_other_id_on_rate_up_banner_is_off_rate() -> None:
    record = make_record(1, 6, char_id="chr_0077_other", char_name="Other")

    assert classify_six_star(record, LAEVATAIN_BANNER, CONFIG) == Classification.OFF_RATE


def test_rate_up_name_used_without_item_list() -> None:
    metadata = PoolMetadata.model_validate({"up6_item_name": "Thermite Cutter"})

    featured = make_weapon(1, 6, weapon_name="Thermite Cutter")
    lost = make_weapon(2, 6, weapon_name="Grand Vision")

    assert classify_six_star(featured, metadata, CONFIG) == Classification.FEATURED
    assert classify_six_star(lost, metadata, CONFIG) == Classification.OFF_RATE


def test_pool_title_containing_name_is_featured() -> None:
    record = make_record(1, 6, char_name="Ember", pool_name="Ember 特選尋訪")

    assert classify_six_star(record, None, CONFIG) == Classification.FEATURED


def test_standard_unit_without_metadata_is_off_rate() -> None:
    record = make_record(1, 6, char_id="chr_0015_lifeng", char_name="Lifeng")

    results = {classify_six_star(record, None, CONFIG) for _ in range(5)}

    assert results == {Classification.OFF_RATE}


def test_standard_list_is_configurable() -> None:
    record = make_record(1, 6, char_id="chr_0101_future")

    updated = PityConfig(standard_six_stars=frozenset({"chr_0101_future"}))

    assert classify_six_star(record, None, CONFIG) == Classification.FEATURED
    assert classify_six_star(record, None, updated) == Classification.OFF_RATE


def test_unknown_unit_defaults_to_featured() -> None:
    record = make_record(1, 6, char_id="chr_0200_unseen", char_name="Unseen")

    assert classify_six_star(record, None, CONFIG) == Classification.FEATURED


def test_name_resolved_ids_are_checked_against_standard_list() -> None:
    metadata = PoolMetadata.model_validate(
        {"all": [{"id": "chr_0009_azrila", "name": "Azrila", "rarity": 6}]}
    )
    record = make_record(1, 6, char_id="", char_name="Azrila")

    assert classify_six_star(record, metadata, CONFIG) == Classification.OFF_RATE


@pytest.mark.parametrize("metadata", [None, LAEVATAIN_BANNER])
def test_classification_is_deterministic(metadata: PoolMetadata | None) -> None:
    record = make_record(1, 6, char_id="chr_0016_laevat", char_name="Laevatain")

    first = classify_six_star(record, metadata, CONFIG)

    assert all(classify_six_star(record, metadata, CONFIG) == first for _ in range(10))


def test_resolve_item_name_falls_back_to_metadata() -> None:
    record = make_record(1, 6, char_id="icon_chr_0016_laevat", char_name=None)

    assert resolve_item_name(record, LAEVATAIN_BANNER) == "Laevatain"
    assert resolve_item_name(record, None) is None
