from market_intel.core.text_utils import clean_text, dedup_key, strip_tags


def test_entity_encoded_markup_is_removed():
    out = clean_text("&lt;b&gt;Gold&lt;/b&gt; rallies")
    assert out == "Gold rallies"
    assert "<" not in out


def test_plain_markup_and_entities():
    assert clean_text("<p>Gold &amp; silver</p>") == "Gold & silver"


def test_adjacent_block_elements_keep_a_space():
    assert clean_text("<li>Fed holds</li><li>Oil slips</li>") == "Fed holds Oil slips"


def test_comparison_sign_in_plain_text_survives():
    assert clean_text("S&P 500 < 5000 again") == "S&P 500 < 5000 again"


def test_cap_applies_after_cleaning():
    assert clean_text("<i>" + "a" * 50 + "</i>", max_chars=10) == "a" * 10


def test_empty_input():
    assert strip_tags("") == ""
    assert clean_text(None) == ""


def test_dedup_key_ignores_case_and_spacing():
    assert dedup_key("  Gold  RALLY ") == dedup_key("gold rally")
