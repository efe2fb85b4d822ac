"""Unit tests for site configuration loading."""

import json

import pytest

from folio.config import DEFAULT_OUTPUTS, MenuEntry, SiteConfig, load_config, load_site_config, resolve_menu
from folio.errors import ConfigError


@pytest.mark.unit
def test_defaults():
    config = SiteConfig.from_mapping({})
    assert config.theme == "paper"
    assert config.title == "My Site"
    assert config.paginate == 10
    assert config.slug_collision == "error"
    assert config.outputs_for("home") == ("HTML", "RSS")
    assert config.outputs_for("taxonomy") == ("HTML",)
    assert config.outputs_for("page") == ("HTML",)
    assert config.unsafe_html is False


@pytest.mark.unit
def test_load_yaml_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "baseURL: https://example.org/blog/",
                "title: Notes",
                "theme: papermod",
                "paginate: 5",
                "params:",
                "  ShowReadingTime: true",
                "  mainSections: [posts]",
                "markup:",
                "  goldmark:",
                "    renderer:",
                "      unsafe: true",
            ]
        ),
        encoding="utf-8",
    )
    config = load_site_config(path)
    assert config.base_url == "https://example.org/blog"
    assert config.base_path == "/blog/"
    assert config.paginate == 5
    assert config.unsafe_html is True
    assert config.main_sections == ("posts",)
    assert config.feature("showreadingtime") is True


@pytest.mark.unit
def test_load_toml_and_json(tmp_path):
    toml_path = tmp_path / "config.toml"
    toml_path.write_text('title = "Toml"\npaginate = 3\n', encoding="utf-8")
    json_path = tmp_path / "config.json"
    json_path.write_text(json.dumps({"title": "Json"}), encoding="utf-8")

    assert load_config(toml_path) == {"title": "Toml", "paginate": 3}
    assert load_site_config(json_path).title == "Json"


@pytest.mark.unit
def test_invalid_config_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yaml")


@pytest.mark.unit
@pytest.mark.parametrize(
    "data",
    [
        {"slugCollision": "ignore"},
        {"baseURL": "example.org"},
        {"outputs": {"page": ["PDF"]}},
        {"outputs": {"archive": ["HTML"]}},
        {"timeout": "soon"},
        {"menu": {"main": [{"name": "No URL"}]}},
        {"markup": {"highlight": {"style": "nosuchstyle"}}},
    ],
)
def test_rejected_values(data):
    with pytest.raises(ConfigError):
        SiteConfig.from_mapping(data)


@pytest.mark.unit
def test_highlight_style_must_exist():
    assert SiteConfig.from_mapping({"markup": {"highlight": {"style": "friendly"}}}).highlight_style == "friendly"
    with pytest.raises(ConfigError, match="nosuchstyle"):
        SiteConfig.from_mapping({"markup": {"highlight": {"style": "nosuchstyle"}}})


@pytest.mark.unit
def test_menu_sorted_by_weight():
    config = SiteConfig.from_mapping(
        {
            "menu": {
                "main": [
                    {"name": "B", "url": "/b/", "weight": 2},
                    {"name": "A", "url": "/a/", "weight": 1},
                    {"name": "D", "url": "/d/", "weight": 4},
                    {"name": "C", "url": "https://example.com", "weight": 3},
                ]
            }
        }
    )
    assert [entry.weight for entry in config.menu] == [1, 2, 3, 4]
    assert [entry.name for entry in config.menu] == ["A", "B", "C", "D"]
    assert config.menu[2].is_external


@pytest.mark.unit
def test_menu_ties_keep_declaration_order():
    entries = [MenuEntry(name, f"/{name}/", 1, name) for name in ("x", "y", "z")]
    assert [entry.name for entry in resolve_menu(entries)] == ["x", "y", "z"]


@pytest.mark.unit
def test_page_params_override_site_features():
    config = SiteConfig.from_mapping({"params": {"ShowToc": True}})
    assert config.feature("ShowToc") is True
    assert config.feature("ShowToc", {"showtoc": False}) is False
    assert config.feature("ShowShareButtons") is False


@pytest.mark.unit
def test_outputs_override_keeps_other_kinds():
    config = SiteConfig.from_mapping({"outputs": {"home": ["html", "json", "rss"]}})
    assert config.outputs_for("home") == ("HTML", "JSON", "RSS")
    assert config.outputs_for("section") == DEFAULT_OUTPUTS["section"]


@pytest.mark.unit
def test_urls_against_base():
    config = SiteConfig.from_mapping({"baseURL": "https://example.org/sub/"})
    assert config.rel_url("/posts/a/") == "/sub/posts/a/"
    assert config.abs_url("/posts/a/") == "https://example.org/sub/posts/a/"
    assert SiteConfig().abs_url("/posts/a/") == "/posts/a/"


@pytest.mark.unit
def test_timeout_accepts_duration_suffix():
    assert SiteConfig.from_mapping({"timeout": "30s"}).timeout == 30.0
