from __future__ import annotations

from core.config import NormalizerConfig
from core.normalizer import TextNormalizer, flatten_rich_text, strip_format_codes


class _Component:
    def __init__(self, text: str) -> None:
        self._text = text

    def to_string(self) -> str:
        return self._text


class _Exploding:
    def to_string(self) -> str:
        raise RuntimeError("boom")


def test_strips_format_codes() -> None:
    normalizer = TextNormalizer()

    assert normalizer.normalize("§2Guild > §b[MVP§c+§b] Steve§f: gg") == "Guild > [MVP+] Steve: gg"
    assert strip_format_codes("&aHello &lworld") == "Hello world"


def test_flattens_rich_text_tree() -> None:
    tree = {
        "text": "",
        "extra": [
            {"text": "Guild > ", "color": "dark_green"},
            {"text": "Steve", "extra": [{"text": ": "}]},
            "gg",
        ],
    }

    assert flatten_rich_text(tree) == "Guild > Steve: gg"
    assert TextNormalizer().normalize(tree) == "Guild > Steve: gg"


def test_list_of_components_is_flattened() -> None:
    assert TextNormalizer().normalize([{"text": "a"}, {"text": "b"}]) == "ab"


def test_object_with_string_method() -> None:
    assert TextNormalizer().normalize(_Component("Guild > Steve: gg")) == "Guild > Steve: gg"


def test_json_fallback_collects_text_values() -> None:
    raw = {"message": [{"translate": "chat", "with": [{"text": "hi"}]}]}

    assert TextNormalizer().normalize(raw) == "hi"


def test_maps_punctuation_and_control_characters() -> None:
    raw = "“Hi” — it’s fine\x07"

    assert TextNormalizer().normalize(raw) == "\"Hi\" - it's fine"


def test_collapses_whitespace() -> None:
    assert TextNormalizer().normalize("  Guild >   Steve:\t gg  ") == "Guild > Steve: gg"


def test_strip_urls_replaces_links() -> None:
    normalizer = TextNormalizer(NormalizerConfig(strip_urls=True))

    text = normalizer.normalize("see https://example.com and discord.gg/abc at 10.0.0.1:25565")

    assert text == "see [URL] and [DISCORD] at [IP]"


def test_truncates_on_word_boundary_near_limit() -> None:
    normalizer = TextNormalizer(NormalizerConfig(max_length=30))

    assert normalizer.normalize("a" * 25 + " " + "b" * 10) == "a" * 25 + "..."


def test_truncates_mid_word_without_nearby_boundary() -> None:
    normalizer = TextNormalizer(NormalizerConfig(max_length=10))

    assert normalizer.normalize("abcdefghi jklmnop") == "abcdefg..."


def test_normalize_never_raises() -> None:
    result = TextNormalizer().normalize(_Exploding())

    assert isinstance(result, str)
    assert len(result) <= 100


def test_none_and_bytes() -> None:
    normalizer = TextNormalizer()

    assert normalizer.normalize(None) == ""
    assert normalizer.normalize("§aGuild".encode("utf-8")) == "Guild"


def test_clean_content() -> None:
    normalizer = TextNormalizer()

    assert normalizer.clean_content("  §ahello   there ") == "hello there"
    assert normalizer.clean_content(None) == ""
