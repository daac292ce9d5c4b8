from localization import is_bilingual, localize, resolve


def test_resolve_picks_requested_language():
    assert resolve({"en": "A", "ta": "B"}, "ta") == "B"
    assert resolve({"en": "A", "ta": "B"}, "en") == "A"


def test_resolve_falls_back_to_english():
    assert resolve({"en": "A"}, "ta") == "A"
    assert resolve({"en": "A", "ta": ""}, "ta") == "A"


def test_resolve_leaves_plain_values_alone():
    assert resolve("plain", "ta") == "plain"
    assert resolve({"url": "x"}, "ta") == {"url": "x"}
    assert resolve(None, "en") is None


def test_is_bilingual():
    assert is_bilingual({"en": "A"})
    assert not is_bilingual({})
    assert not is_bilingual({"en": "A", "fr": "B"})


def test_localize_only_touches_named_fields():
    doc = {"title": {"en": "A", "ta": "B"}, "alt": {"en": "C", "ta": "D"}}
    localize(doc, ("title",), "ta")
    assert doc == {"title": "B", "alt": {"en": "C", "ta": "D"}}


def test_localize_without_lang_keeps_bilingual_objects():
    doc = {"title": {"en": "A", "ta": "B"}}
    assert localize(doc, ("title",), None) == {"title": {"en": "A", "ta": "B"}}
